from .user import User, ROLE_ADMIN, ROLE_STUDENT
from .email_job import EmailJob
from .email_counter import EmailCounter
from .email_log import EmailLog

__all__ = [
    "User",
    "ROLE_ADMIN",
    "ROLE_STUDENT",
    "EmailJob",
    "EmailCounter",
    "EmailLog",
]
