import json
from typing import Any, Iterable

from flask import current_app

from app.extensions import db
from app.models import EmailJob
from app.models.email_job import JOB_TYPES, STATUS_QUEUED
from app.utils.helpers import utcnow
from app.utils.validators import is_valid_email, normalize_email
from .email_errors import ValidationError
from .email_triggers import emit_job_trigger

MAX_ATTEMPTS = 3


def _validated(spec: dict[str, Any]) -> dict[str, Any]:
    if not spec.get("user_id"):
        raise ValidationError("userId is required for email jobs")
    job_type = spec.get("type")
    if job_type not in JOB_TYPES:
        raise ValidationError(f"Unknown email job type: {job_type!r}")
    email = normalize_email(spec.get("email"))
    if not is_valid_email(email):
        raise ValidationError("A valid recipient email is required")
    if not spec.get("subject") or not spec.get("html"):
        raise ValidationError("subject and html are required")
    return {
        "type": job_type,
        "user_id": spec["user_id"],
        "email": email,
        "subject": spec["subject"],
        "html": spec["html"],
        "is_admin": bool(spec.get("is_admin")),
    }


def _new_job(clean: dict[str, Any]) -> EmailJob:
    now = utcnow()
    return EmailJob(
        **clean,
        status=STATUS_QUEUED,
        attempts=0,
        max_attempts=int(current_app.config.get("EMAIL_JOB_MAX_ATTEMPTS", MAX_ATTEMPTS)),
        next_run_at=now,
        created_at=now,
        updated_at=now,
    )


def enqueue_email_jobs(specs: Iterable[dict[str, Any]]) -> list[int]:
    """
    Persist every spec as a QUEUED job in one transaction. The whole batch is
    rejected if any spec is invalid. One dispatch trigger per job after commit.
    """
    cleaned = [_validated(spec) for spec in specs]
    if not cleaned:
        return []

    jobs = [_new_job(c) for c in cleaned]
    try:
        db.session.add_all(jobs)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    job_ids = [job.id for job in jobs]
    for job in jobs:
        current_app.logger.info(json.dumps({
            "event": "email_job_enqueued",
            "job_id": job.id,
            "type": job.type,
            "user_id": job.user_id,
        }))
    for job_id in job_ids:
        emit_job_trigger(job_id)
    return job_ids


def enqueue_email_job(type: str, user_id, email: str, subject: str, html: str, is_admin: bool = False) -> int:
    """Enqueue one email; returns the job id. Raises ValidationError without user_id."""
    return enqueue_email_jobs([{
        "type": type,
        "user_id": user_id,
        "email": email,
        "subject": subject,
        "html": html,
        "is_admin": is_admin,
    }])[0]
