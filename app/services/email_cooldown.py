import math
from datetime import datetime, timedelta

from flask import current_app

from app.extensions import db
from app.models import EmailLog
from app.utils.helpers import utcnow
from .email_errors import CooldownActive

COOLDOWN_SECONDS = 60


def cooldown_seconds() -> int:
    return int(current_app.config.get("EMAIL_COOLDOWN_SECONDS", COOLDOWN_SECONDS))


def check_cooldown(user_id, now: datetime | None = None) -> None:
    """
    Fail fast if the user already got an email inside the cooldown window.
    Runs in the caller's transaction (see email_quota.check_send_allowed).
    """
    window = cooldown_seconds()
    if window <= 0:
        return
    now = now or utcnow()

    last_sent = db.session.execute(
        db.select(EmailLog.created_at)
        .where(EmailLog.user_id == user_id, EmailLog.created_at >= now - timedelta(seconds=window))
        .order_by(EmailLog.created_at.desc())
        .limit(1)
    ).scalar()
    if last_sent is None:
        return

    elapsed_ms = (now - last_sent).total_seconds() * 1000
    seconds_left = max(1, math.ceil((window * 1000 - elapsed_ms) / 1000))
    raise CooldownActive(seconds_left)
