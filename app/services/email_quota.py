"""
Quota ledger: per-user and system-wide daily send counters.

check_* only reads; counters move exclusively through consume_quota_and_log(),
after the transport confirmed the send.
"""
import json
from datetime import date, datetime, timezone

from flask import current_app

from app.extensions import db
from app.models import EmailCounter, EmailLog
from app.models.email_counter import SCOPE_USER, SCOPE_GLOBAL, SYSTEM_KEY
from app.utils.helpers import utcnow
from .email_cooldown import check_cooldown
from .email_errors import QuotaExceeded, QuotaOvershoot

USER_DAILY_LIMIT = 5
SYSTEM_DAILY_LIMIT = 400


def today_utc() -> date:
    """Quota day; boundary is UTC midnight."""
    return datetime.now(timezone.utc).date()


def user_daily_limit() -> int:
    return int(current_app.config.get("EMAIL_USER_DAILY_LIMIT", USER_DAILY_LIMIT))


def system_daily_limit() -> int:
    return int(current_app.config.get("EMAIL_SYSTEM_DAILY_LIMIT", SYSTEM_DAILY_LIMIT))


def _counter_value(scope: str, key: str, day: date, lock: bool = False) -> int:
    stmt = db.select(EmailCounter.count).where(
        EmailCounter.scope == scope,
        EmailCounter.key == key,
        EmailCounter.date == day,
    )
    if lock:
        # FOR SHARE: wait for an in-flight consume instead of reading a count it is about to change
        stmt = stmt.with_for_update(read=True)
    return db.session.execute(stmt).scalar() or 0


def _dialect_insert():
    name = db.session.get_bind().dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


def _increment_counter(scope: str, key: str, day: date, user_id=None) -> int:
    """Create-at-1 or +1 in a single statement; returns the new count."""
    now = utcnow()
    insert = _dialect_insert()
    if insert is not None:
        stmt = insert(EmailCounter).values(
            scope=scope, key=key, date=day, count=1, user_id=user_id, created_at=now, updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["scope", "key", "date"],
            set_={"count": EmailCounter.count + 1, "updated_at": now},
        )
        db.session.execute(stmt)
    else:
        updated = db.session.execute(
            db.update(EmailCounter)
            .where(EmailCounter.scope == scope, EmailCounter.key == key, EmailCounter.date == day)
            .values(count=EmailCounter.count + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not updated:
            db.session.add(EmailCounter(scope=scope, key=key, date=day, count=1, user_id=user_id))
            db.session.flush()
    return _counter_value(scope, key, day)


def check_quota(user_id, is_admin: bool = False) -> None:
    """
    Raise QuotaExceeded if today's USER counter (skipped for admins) or the GLOBAL
    counter already reached its limit. Runs in the caller's transaction.
    """
    today = today_utc()
    if not is_admin:
        used = _counter_value(SCOPE_USER, str(user_id), today, lock=True)
        limit = user_daily_limit()
        if used >= limit:
            raise QuotaExceeded(SCOPE_USER, used=used, limit=limit)

    used = _counter_value(SCOPE_GLOBAL, SYSTEM_KEY, today, lock=True)
    limit = system_daily_limit()
    if used >= limit:
        raise QuotaExceeded(SCOPE_GLOBAL, used=used, limit=limit)


def check_send_allowed(user_id, is_admin: bool = False) -> None:
    """Cooldown + quota checks as one read-only transaction."""
    try:
        if not is_admin:
            check_cooldown(user_id)
        check_quota(user_id, is_admin=is_admin)
    finally:
        # read-only: ending the transaction releases the share locks
        db.session.rollback()


def consume_quota_and_log(user_id, email: str, type: str, is_admin: bool = False, job_id=None) -> EmailLog:
    """
    After a confirmed send: bump USER (unless admin) and GLOBAL counters for today and
    append the EmailLog row, all in one transaction.

    The new counts are re-validated afterwards. An overshoot (a concurrent consumer passed
    the same check) is committed anyway, since the email is already out, and then
    reported as QuotaOvershoot so the caller can record the anomaly without resending.
    """
    today = today_utc()
    overshoot = None
    try:
        if not is_admin:
            count = _increment_counter(SCOPE_USER, str(user_id), today, user_id=user_id)
            limit = user_daily_limit()
            if count > limit:
                overshoot = QuotaOvershoot(SCOPE_USER, used=count, limit=limit)

        count = _increment_counter(SCOPE_GLOBAL, SYSTEM_KEY, today)
        limit = system_daily_limit()
        if count > limit and overshoot is None:
            overshoot = QuotaOvershoot(SCOPE_GLOBAL, used=count, limit=limit)

        entry = EmailLog(user_id=user_id, email=email, type=type, job_id=job_id, created_at=utcnow())
        db.session.add(entry)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    from .email_stats import invalidate_statistics
    invalidate_statistics()

    if overshoot is not None:
        current_app.logger.warning(json.dumps({
            "event": "email_quota_overshoot",
            "scope": overshoot.scope,
            "user_id": user_id,
            "count": overshoot.used,
            "limit": overshoot.limit,
        }))
        raise overshoot
    return entry
