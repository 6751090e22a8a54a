from sqlalchemy import UniqueConstraint, CheckConstraint
from app.extensions import db
from app.utils.helpers import utcnow, iso

SCOPE_USER = "USER"
SCOPE_GLOBAL = "GLOBAL"
# Fixed key of the single system-wide row per day
SYSTEM_KEY = "SYSTEM"

class EmailCounter(db.Model):
    __tablename__ = "email_counters"

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(10), nullable=False)
    key = db.Column(db.String(64), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    count = db.Column(db.Integer, nullable=False, default=0)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", lazy="joined")

    __table_args__ = (
        UniqueConstraint("scope", "key", "date", name="uq_email_counters_scope_key_date"),
        CheckConstraint("scope IN ('USER','GLOBAL')", name="ck_email_counters_scope_valid"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope": self.scope,
            "key": self.key,
            "date": self.date.isoformat() if self.date else None,
            "count": self.count,
            "user_id": self.user_id,
            "user": {"name": self.user.name, "email": self.user.email} if self.user else None,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<EmailCounter {self.scope}:{self.key} {self.date} count={self.count}>"
