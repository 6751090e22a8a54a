"""
Read-only email statistics for the admin dashboard. Advisory data: served from
a short-TTL cache and invalidated whenever the ledger or logs change.
"""
from datetime import timedelta

from flask import current_app

from app.extensions import db, cache
from app.models import EmailCounter, EmailJob, EmailLog
from app.models.email_counter import SCOPE_USER, SCOPE_GLOBAL, SYSTEM_KEY
from app.models.email_job import JOB_STATUSES
from .email_quota import today_utc, user_daily_limit, system_daily_limit

STATS_CACHE_KEY = "email:stats"
TOP_USERS = 10
RECENT_EMAILS = 20
RECENT_JOBS = 20


def invalidate_statistics() -> None:
    cache.delete(STATS_CACHE_KEY)


def get_email_statistics() -> dict:
    stats = cache.get(STATS_CACHE_KEY)
    if stats is None:
        stats = _build_email_statistics()
        cache.set(STATS_CACHE_KEY, stats, timeout=int(current_app.config.get("EMAIL_STATS_CACHE_SECONDS", 60)))
    return stats


def _system_count(day) -> int:
    return db.session.execute(
        db.select(EmailCounter.count).where(
            EmailCounter.scope == SCOPE_GLOBAL,
            EmailCounter.key == SYSTEM_KEY,
            EmailCounter.date == day,
        )
    ).scalar() or 0


def _build_email_statistics() -> dict:
    today = today_utc()
    today_count = _system_count(today)
    yesterday_count = _system_count(today - timedelta(days=1))
    limit = system_daily_limit()

    top_users = db.session.execute(
        db.select(EmailCounter)
        .where(EmailCounter.scope == SCOPE_USER, EmailCounter.date == today)
        .order_by(EmailCounter.count.desc())
        .limit(TOP_USERS)
    ).scalars().all()

    recent = db.session.execute(
        db.select(EmailLog).order_by(EmailLog.created_at.desc(), EmailLog.id.desc()).limit(RECENT_EMAILS)
    ).scalars().all()

    total = db.session.execute(db.select(db.func.count(EmailLog.id))).scalar() or 0

    return {
        "system_quota": {
            "today": today_count,
            "yesterday": yesterday_count,
            "limit": limit,
            "percentage_used": min(100, round(today_count / limit * 100)) if limit else 100,
        },
        "top_users": [c.to_dict() for c in top_users],
        "recent_emails": [log.to_dict() for log in recent],
        "total_emails": total,
        "user_limit": user_daily_limit(),
    }


def get_queue_status() -> dict:
    """Job counts per status plus the most recent jobs (not cached: operators poll it)."""
    rows = db.session.execute(
        db.select(EmailJob.status, db.func.count(EmailJob.id)).group_by(EmailJob.status)
    ).all()
    counts = {status: 0 for status in JOB_STATUSES}
    counts.update({status: n for status, n in rows})

    recent = db.session.execute(
        db.select(EmailJob).order_by(EmailJob.created_at.desc(), EmailJob.id.desc()).limit(RECENT_JOBS)
    ).scalars().all()
    return {"counts": counts, "recent_jobs": [job.to_dict() for job in recent]}
