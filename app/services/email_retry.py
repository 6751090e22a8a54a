"""
Retry/backoff policy for email jobs.

Pure decision logic: given the job's attempt accounting and the failure class,
return the state the job must be persisted in. No database access here.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.models.email_job import STATUS_QUEUED, STATUS_FAILED
from app.utils.helpers import utcnow

BACKOFF_BASE_MS = 2000
CAPACITY_RETRY_SECONDS = 60


@dataclass(frozen=True)
class RetryDecision:
    status: str
    attempts: int
    next_run_at: datetime
    delay_ms: int | None  # None when terminal

    @property
    def terminal(self) -> bool:
        return self.status == STATUS_FAILED


def compute_backoff_ms(attempts: int, base_ms: int = BACKOFF_BASE_MS) -> int:
    """2s, 4s, 8s, 16s... keyed on the attempts consumed before this failure."""
    return base_ms * (2 ** max(0, attempts))


def decide_next_state(
    attempts: int,
    max_attempts: int,
    capacity_failure: bool,
    now: datetime | None = None,
    base_ms: int = BACKOFF_BASE_MS,
    capacity_retry_seconds: int = CAPACITY_RETRY_SECONDS,
) -> RetryDecision:
    now = now or utcnow()
    attempts = attempts or 0

    if capacity_failure:
        # Quota/cooldown: non-consuming, never terminal.
        delay_ms = capacity_retry_seconds * 1000
        return RetryDecision(
            status=STATUS_QUEUED,
            attempts=attempts,
            next_run_at=now + timedelta(milliseconds=delay_ms),
            delay_ms=delay_ms,
        )

    next_attempts = attempts + 1
    if next_attempts >= max_attempts:
        return RetryDecision(status=STATUS_FAILED, attempts=next_attempts, next_run_at=now, delay_ms=None)

    delay_ms = compute_backoff_ms(attempts, base_ms=base_ms)
    return RetryDecision(
        status=STATUS_QUEUED,
        attempts=next_attempts,
        next_run_at=now + timedelta(milliseconds=delay_ms),
        delay_ms=delay_ms,
    )
