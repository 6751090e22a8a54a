"""
Claim/dispatch loop for queued email jobs.

Claiming is the only concurrency-sensitive step: candidates are selected with
FOR UPDATE SKIP LOCKED (where the database supports it) and each one is moved
QUEUED -> PROCESSING by a compare-and-swap UPDATE, so two concurrent sweeps or
event deliveries never process the same job. Once a job is PROCESSING it is
owned by the claimer and processed sequentially.
"""
import json
from datetime import datetime, timedelta

from flask import current_app

from app.extensions import db
from app.models import EmailJob
from app.models.email_job import STATUS_QUEUED, STATUS_PROCESSING, STATUS_SENT, STATUS_FAILED
from app.utils.helpers import utcnow
from .email_errors import MissingOwner, QuotaOvershoot, EmailPipelineError, is_capacity_error
from .email_retry import decide_next_state, RetryDecision
from .email_triggers import emit_job_trigger
from .mailer import deliver_system_email, record_system_email

DEFAULT_BATCH_LIMIT = 10
STALE_AFTER_SECONDS = 600


def _empty_result() -> dict:
    return {"processed": 0, "sent": 0, "failed": 0}


def _mark_processing(job_id: int, now: datetime, due_only: bool = False) -> bool:
    stmt = db.update(EmailJob).where(EmailJob.id == job_id, EmailJob.status == STATUS_QUEUED)
    if due_only:
        stmt = stmt.where(EmailJob.next_run_at <= now)
    result = db.session.execute(
        stmt.values(status=STATUS_PROCESSING, claimed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def claim_jobs(limit: int) -> list[EmailJob]:
    """
    Atomically move up to `limit` due QUEUED jobs (oldest first) to PROCESSING and
    return them. Jobs locked or already claimed by another worker are skipped.
    """
    now = utcnow()
    try:
        candidate_ids = db.session.execute(
            db.select(EmailJob.id)
            .where(EmailJob.status == STATUS_QUEUED, EmailJob.next_run_at <= now)
            .order_by(EmailJob.created_at.asc(), EmailJob.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        ).scalars().all()
        claimed_ids = [job_id for job_id in candidate_ids if _mark_processing(job_id, now)]
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if not claimed_ids:
        return []
    return db.session.execute(
        db.select(EmailJob)
        .where(EmailJob.id.in_(claimed_ids))
        .order_by(EmailJob.created_at.asc(), EmailJob.id.asc())
    ).scalars().all()


def process_jobs(limit: int | None = None) -> dict:
    """
    Sweep entry point. Claims a batch and processes it; returns
    {"processed", "sent", "failed"}. Per-job failures become persisted job
    state; only a failure to claim propagates.
    """
    if limit is None:
        limit = int(current_app.config.get("EMAIL_JOB_BATCH_LIMIT", DEFAULT_BATCH_LIMIT))
    job_ids = [job.id for job in claim_jobs(limit)]
    if not job_ids:
        return _empty_result()

    sent = failed = 0
    for job_id in job_ids:
        if _run_claimed(job_id):
            sent += 1
        else:
            failed += 1

    result = {"processed": len(job_ids), "sent": sent, "failed": failed}
    current_app.logger.info(json.dumps({"event": "email_jobs_processed", **result}))
    return result


def process_job(job_id: int) -> dict:
    """
    Event-driven entry point for one job. Redelivery-safe: a job that is not
    QUEUED, or not due yet, is left alone.
    """
    now = utcnow()
    try:
        claimed = _mark_processing(job_id, now, due_only=True)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if not claimed:
        current_app.logger.debug(json.dumps({"event": "email_job_skip", "job_id": job_id}))
        return _empty_result()

    ok = _run_claimed(job_id)
    return {"processed": 1, "sent": int(ok), "failed": int(not ok)}


def _run_claimed(job_id: int) -> bool:
    """Process one PROCESSING job. Never raises; returns True when the email went out."""
    try:
        return _process_claimed(job_id)
    except Exception:
        # Persisting the job outcome failed; the job stays PROCESSING until stale recovery.
        db.session.rollback()
        current_app.logger.exception("email_job_state_update_failed job_id=%s", job_id)
        return False


def _process_claimed(job_id: int) -> bool:
    job = db.session.get(EmailJob, job_id)
    if job is None:
        return False

    if not job.user_id:
        _fail_missing_owner(job)
        return False

    try:
        deliver_system_email(job.user_id, job.email, job.subject, job.html, is_admin=job.is_admin)
    except Exception as exc:
        db.session.rollback()
        _reschedule(job_id, exc)
        return False

    # Delivered from here on: whatever happens to the ledger, never resend.
    try:
        record_system_email(job.user_id, job.email, job.type, is_admin=job.is_admin, job_id=job_id)
    except QuotaOvershoot as exc:
        db.session.rollback()
        _mark_sent(job_id, anomaly=f"Sent over quota: {exc}")
        return True
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("email_job_ledger_failed job_id=%s", job_id)
        _mark_sent(job_id, anomaly=f"Sent but not recorded: {exc}")
        return True

    _mark_sent(job_id)
    return True


def _mark_sent(job_id: int, anomaly: str | None = None) -> None:
    job = db.session.get(EmailJob, job_id)
    job.status = STATUS_SENT
    job.last_error = anomaly
    job.updated_at = utcnow()
    db.session.commit()
    current_app.logger.info(json.dumps({
        "event": "email_job_sent",
        "job_id": job_id,
        "type": job.type,
        "user_id": job.user_id,
        "attempts": job.attempts,
        "anomaly": anomaly,
    }))


def _fail_missing_owner(job: EmailJob) -> None:
    now = utcnow()
    job.status = STATUS_FAILED
    job.last_error = str(MissingOwner(job.id))
    job.next_run_at = now
    job.updated_at = now
    db.session.commit()
    current_app.logger.error(json.dumps({
        "event": "email_job_failed",
        "job_id": job.id,
        "reason": "missing_owner",
    }))


def _apply_decision(job: EmailJob, decision: RetryDecision, error: str) -> None:
    job.attempts = decision.attempts
    job.status = decision.status
    job.next_run_at = decision.next_run_at
    job.last_error = error
    job.claimed_at = None
    job.updated_at = utcnow()


def _decide(job: EmailJob, capacity_failure: bool) -> RetryDecision:
    cfg = current_app.config
    return decide_next_state(
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        capacity_failure=capacity_failure,
        base_ms=int(cfg.get("EMAIL_BACKOFF_BASE_MS", 2000)),
        capacity_retry_seconds=int(cfg.get("EMAIL_QUOTA_RETRY_SECONDS", 60)),
    )


def _reschedule(job_id: int, exc: Exception) -> None:
    job = db.session.get(EmailJob, job_id)
    capacity = is_capacity_error(exc)
    decision = _decide(job, capacity_failure=capacity)
    _apply_decision(job, decision, str(exc))
    db.session.commit()

    event = {
        "event": "email_job_failed" if decision.terminal else ("email_job_deferred" if capacity else "email_job_retry"),
        "job_id": job_id,
        "type": job.type,
        "user_id": job.user_id,
        "attempts": decision.attempts,
        "max_attempts": job.max_attempts,
        "delay_ms": decision.delay_ms,
        "error_type": type(exc).__name__,
        "error": str(exc),
    }
    if decision.terminal:
        current_app.logger.error(json.dumps(event))
    elif capacity:
        current_app.logger.info(json.dumps(event))
    else:
        current_app.logger.warning(json.dumps(event))
    if not isinstance(exc, EmailPipelineError):
        current_app.logger.debug("unexpected email job error", exc_info=exc)

    if not decision.terminal:
        emit_job_trigger(job_id, delay_seconds=decision.delay_ms / 1000)


def recover_stale_jobs(older_than_seconds: int | None = None) -> int:
    """
    Return PROCESSING jobs whose claim is older than the cutoff to the retry
    policy, as a consumed attempt (a crash mid-send may or may not have sent).
    """
    if older_than_seconds is None:
        older_than_seconds = int(current_app.config.get("EMAIL_JOB_STALE_SECONDS", STALE_AFTER_SECONDS))
    now = utcnow()
    cutoff = now - timedelta(seconds=older_than_seconds)

    try:
        stale = db.session.execute(
            db.select(EmailJob)
            .where(
                EmailJob.status == STATUS_PROCESSING,
                db.func.coalesce(EmailJob.claimed_at, EmailJob.updated_at) <= cutoff,
            )
            .order_by(EmailJob.created_at.asc())
            .with_for_update(skip_locked=True)
        ).scalars().all()

        requeued = []
        for job in stale:
            decision = _decide(job, capacity_failure=False)
            _apply_decision(job, decision, f"Stale PROCESSING claim recovered after {older_than_seconds}s")
            if not decision.terminal:
                requeued.append((job.id, decision.delay_ms))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if stale:
        current_app.logger.warning(json.dumps({
            "event": "email_jobs_recovered",
            "count": len(stale),
            "requeued": len(requeued),
        }))
    for job_id, delay_ms in requeued:
        emit_job_trigger(job_id, delay_seconds=delay_ms / 1000)
    return len(stale)
