from app.extensions import db
from app.utils.helpers import utcnow, iso

# Job types (passed through to templates and logs; the dispatch loop is agnostic)
TYPE_VERIFICATION = "VERIFICATION"
TYPE_VERIFICATION_RESEND = "VERIFICATION_RESEND"
TYPE_PASSWORD_RESET = "PASSWORD_RESET"
TYPE_PAYMENT_NOTIFICATION = "PAYMENT_NOTIFICATION"
JOB_TYPES = (
    TYPE_VERIFICATION,
    TYPE_VERIFICATION_RESEND,
    TYPE_PASSWORD_RESET,
    TYPE_PAYMENT_NOTIFICATION,
)

STATUS_QUEUED = "QUEUED"
STATUS_PROCESSING = "PROCESSING"
STATUS_SENT = "SENT"
STATUS_FAILED = "FAILED"
JOB_STATUSES = (STATUS_QUEUED, STATUS_PROCESSING, STATUS_SENT, STATUS_FAILED)

class EmailJob(db.Model):
    __tablename__ = "email_jobs"

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(40), nullable=False, index=True)
    # Nullable at the storage level: a job whose owner is gone must still surface as FAILED.
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email = db.Column(db.String(320), nullable=False)
    subject = db.Column(db.String(200), nullable=False)
    html = db.Column(db.Text, nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(20), nullable=False, default=STATUS_QUEUED, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    max_attempts = db.Column(db.Integer, nullable=False, default=3)
    next_run_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_error = db.Column(db.Text, nullable=True)
    claimed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User")

    __table_args__ = (
        # Claim query: status = QUEUED AND next_run_at <= now ORDER BY created_at
        db.Index("ix_email_jobs_status_next_run_at", "status", "next_run_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "user_id": self.user_id,
            "email": self.email,
            "subject": self.subject,
            "is_admin": self.is_admin,
            "status": self.status,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "next_run_at": iso(self.next_run_at),
            "last_error": self.last_error,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<EmailJob id={self.id} type={self.type} status={self.status} attempts={self.attempts}>"
