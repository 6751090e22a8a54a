from app.extensions import db
from app.utils.helpers import utcnow, iso

class EmailLog(db.Model):
    """One confirmed send. Append-only; removed only by retention cleanup."""
    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email = db.Column(db.String(320), nullable=False, index=True)
    type = db.Column(db.String(40), nullable=False, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey("email_jobs.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    user = db.relationship("User", lazy="joined")

    __table_args__ = (
        # Cooldown lookup: latest log of one user
        db.Index("ix_email_logs_user_id_created_at", "user_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "type": self.type,
            "job_id": self.job_id,
            "created_at": iso(self.created_at),
            "user": {"name": self.user.name, "email": self.user.email} if self.user else None,
        }

    def __repr__(self) -> str:
        return f"<EmailLog id={self.id} to={self.email} type={self.type}>"
