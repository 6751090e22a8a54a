"""
Failure taxonomy of the email pipeline.

Capacity-class errors (quota, cooldown) never consume a job attempt; everything
else raised while sending does.
"""

from app.models.email_counter import SCOPE_USER


class EmailPipelineError(Exception):
    """Base class for every error the email pipeline raises on purpose."""


class ValidationError(EmailPipelineError):
    """Malformed enqueue request; rejected before anything is persisted."""


class QuotaExceeded(EmailPipelineError):
    def __init__(self, scope: str, used: int | None = None, limit: int | None = None):
        self.scope = scope
        self.used = used
        self.limit = limit
        if scope == SCOPE_USER:
            msg = "Daily email limit reached"
        else:
            msg = "System email quota exceeded"
        super().__init__(msg)


class QuotaOvershoot(QuotaExceeded):
    """
    Raised after a send was already delivered and recorded, when the post-increment
    re-validation finds the counter above its limit (two consumers raced past the check).
    """


class CooldownActive(EmailPipelineError):
    def __init__(self, seconds_left: int):
        self.seconds_left = seconds_left
        super().__init__(f"Please wait {seconds_left} seconds before sending another email")


class TransportError(EmailPipelineError):
    """SMTP send failed (auth, connection, provider rejection)."""


class MissingOwner(EmailPipelineError):
    def __init__(self, job_id=None):
        self.job_id = job_id
        super().__init__("Missing userId - cannot send email")


CAPACITY_ERRORS = (QuotaExceeded, CooldownActive)


def is_capacity_error(exc: BaseException) -> bool:
    return isinstance(exc, CAPACITY_ERRORS)
