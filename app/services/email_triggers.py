"""
Dispatch triggers. With the "sweep" backend the periodic sweep (cron endpoint,
CLI, Celery beat) is the only trigger and per-job emits are no-ops; with
"celery" every job gets its own task, redelivered with the retry delay.
"""
import json
import math

from flask import current_app

BACKEND_SWEEP = "sweep"
BACKEND_CELERY = "celery"


def trigger_backend() -> str:
    return (current_app.config.get("EMAIL_TRIGGER_BACKEND") or BACKEND_SWEEP).lower()


def emit_job_trigger(job_id: int, delay_seconds: float = 0) -> bool:
    """
    Returns True when a per-job trigger was actually published. A broker
    failure is logged and reported as False, never raised to the enqueuer.
    """
    backend = trigger_backend()
    if backend == BACKEND_SWEEP:
        return False
    if backend != BACKEND_CELERY:
        raise RuntimeError(f"Unknown EMAIL_TRIGGER_BACKEND: {backend!r}")

    # Lazy import: tasks import the worker, which imports this module
    from app.tasks import process_email_job_task
    countdown = max(0, math.ceil(delay_seconds))
    try:
        process_email_job_task.apply_async(args=[job_id], countdown=countdown)
    except Exception:
        # The job row is already committed; the periodic sweep still picks it up.
        current_app.logger.exception(json.dumps({
            "event": "email_job_trigger_failed",
            "job_id": job_id,
            "backend": backend,
        }))
        return False
    current_app.logger.debug(json.dumps({
        "event": "email_job_trigger",
        "job_id": job_id,
        "backend": backend,
        "countdown": countdown,
    }))
    return True
