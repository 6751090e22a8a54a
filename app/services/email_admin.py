"""Admin-side queries and manual interventions on the email tables."""
import json
import math
from datetime import timedelta

from flask import current_app

from app.extensions import db
from app.models import EmailCounter, EmailJob, EmailLog, User
from app.models.email_job import STATUS_FAILED, STATUS_QUEUED
from app.utils.helpers import utcnow, safe_int, parse_date
from .email_errors import ValidationError
from .email_stats import invalidate_statistics
from .email_triggers import emit_job_trigger

MAX_PAGE_SIZE = 100


def _page_params(params: dict) -> tuple[int, int]:
    page = safe_int(params.get("page"), 1, lo=1)
    page_size = safe_int(params.get("page_size"), 10, lo=1, hi=MAX_PAGE_SIZE)
    return page, page_size


def _pagination(page: int, page_size: int, total: int) -> dict:
    return {
        "page": page,
        "page_size": page_size,
        "total_count": total,
        "total_pages": math.ceil(total / page_size) if total else 0,
    }


def _selected(value) -> bool:
    return value not in (None, "", "all")


def list_email_logs(params: dict | None = None) -> dict:
    params = params or {}
    page, page_size = _page_params(params)

    filters = []
    search = (params.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        filters.append(db.or_(EmailLog.email.ilike(like), User.name.ilike(like), User.email.ilike(like)))
    if _selected(params.get("type")):
        filters.append(EmailLog.type == params["type"])
    if _selected(params.get("user_id")):
        filters.append(EmailLog.user_id == safe_int(params["user_id"]))
    start, end = parse_date(params.get("start_date")), parse_date(params.get("end_date"))
    if start:
        filters.append(EmailLog.created_at >= start)
    if end:
        filters.append(EmailLog.created_at <= end)

    total = db.session.execute(
        db.select(db.func.count(EmailLog.id))
        .select_from(EmailLog)
        .outerjoin(User, EmailLog.user_id == User.id)
        .where(*filters)
    ).scalar() or 0
    logs = db.session.execute(
        db.select(EmailLog)
        .outerjoin(User, EmailLog.user_id == User.id)
        .where(*filters)
        .order_by(EmailLog.created_at.desc(), EmailLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).scalars().unique().all()
    types = db.session.execute(
        db.select(EmailLog.type).group_by(EmailLog.type).order_by(EmailLog.type.asc())
    ).scalars().all()

    return {
        "logs": [log.to_dict() for log in logs],
        "pagination": _pagination(page, page_size, total),
        "filters": {"types": types},
    }


def list_email_counters(params: dict | None = None) -> dict:
    params = params or {}
    page, page_size = _page_params(params)

    filters = []
    if _selected(params.get("scope")):
        filters.append(EmailCounter.scope == params["scope"])
    if _selected(params.get("user_id")):
        filters.append(EmailCounter.user_id == safe_int(params["user_id"]))
    start, end = parse_date(params.get("start_date")), parse_date(params.get("end_date"))
    if start:
        filters.append(EmailCounter.date >= start.date())
    if end:
        filters.append(EmailCounter.date <= end.date())
    min_count = safe_int(params.get("min_count"), 0)
    if min_count > 0:
        filters.append(EmailCounter.count >= min_count)

    total = db.session.execute(
        db.select(db.func.count(EmailCounter.id)).where(*filters)
    ).scalar() or 0
    counters = db.session.execute(
        db.select(EmailCounter)
        .where(*filters)
        .order_by(EmailCounter.date.desc(), EmailCounter.count.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).scalars().unique().all()
    total_sum, average, max_count, last_date = db.session.execute(
        db.select(
            db.func.sum(EmailCounter.count),
            db.func.avg(EmailCounter.count),
            db.func.max(EmailCounter.count),
            db.func.max(EmailCounter.date),
        ).where(*filters)
    ).one()

    return {
        "counters": [c.to_dict() for c in counters],
        "pagination": _pagination(page, page_size, total),
        "summary": {
            "total_emails": int(total_sum or 0),
            "average_per_day": round(float(average or 0)),
            "max_in_one_day": int(max_count or 0),
            "last_date": last_date.isoformat() if last_date else None,
        },
    }


def users_for_filter() -> list[dict]:
    """Users that appear in logs or counters."""
    has_logs = db.select(EmailLog.id).where(EmailLog.user_id == User.id).exists()
    has_counters = db.select(EmailCounter.id).where(EmailCounter.user_id == User.id).exists()
    users = db.session.execute(
        db.select(User).where(db.or_(has_logs, has_counters)).order_by(User.name.asc())
    ).scalars().all()
    return [{"id": u.id, "name": u.name, "email": u.email} for u in users]


def _ids(ids) -> list[int]:
    if not isinstance(ids, (list, tuple)):
        raise ValidationError("ids must be a list")
    return [safe_int(i) for i in ids if safe_int(i) > 0]


def delete_email_logs(ids) -> int:
    result = db.session.execute(
        db.delete(EmailLog).where(EmailLog.id.in_(_ids(ids))).execution_options(synchronize_session=False)
    )
    db.session.commit()
    invalidate_statistics()
    return result.rowcount


def cleanup_old_email_logs(days_old: int = 30) -> int:
    """Retention cleanup: drop logs older than `days_old` days."""
    cutoff = utcnow() - timedelta(days=max(0, days_old))
    result = db.session.execute(
        db.delete(EmailLog).where(EmailLog.created_at <= cutoff).execution_options(synchronize_session=False)
    )
    db.session.commit()
    invalidate_statistics()
    current_app.logger.info(json.dumps({"event": "email_logs_cleanup", "days_old": days_old, "deleted": result.rowcount}))
    return result.rowcount


def delete_email_counters(ids) -> int:
    result = db.session.execute(
        db.delete(EmailCounter).where(EmailCounter.id.in_(_ids(ids))).execution_options(synchronize_session=False)
    )
    db.session.commit()
    invalidate_statistics()
    return result.rowcount


def reset_email_counter(counter_id: int) -> EmailCounter | None:
    counter = db.session.get(EmailCounter, counter_id)
    if counter is None:
        return None
    counter.count = 0
    db.session.commit()
    invalidate_statistics()
    current_app.logger.info(json.dumps({"event": "email_counter_reset", "counter_id": counter_id, "scope": counter.scope}))
    return counter


def retry_failed_job(job_id: int) -> EmailJob | None:
    """Manual intervention: put a FAILED job back in the queue with a fresh attempt budget."""
    job = db.session.get(EmailJob, job_id)
    if job is None:
        return None
    if job.status != STATUS_FAILED:
        raise ValidationError(f"Only FAILED jobs can be retried (job is {job.status})")
    now = utcnow()
    job.status = STATUS_QUEUED
    job.attempts = 0
    job.next_run_at = now
    job.claimed_at = None
    job.updated_at = now
    db.session.commit()
    current_app.logger.info(json.dumps({"event": "email_job_manual_retry", "job_id": job_id}))
    emit_job_trigger(job_id)
    return job
