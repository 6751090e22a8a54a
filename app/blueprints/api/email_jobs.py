import json

from flask import request, jsonify, current_app, Response

from app.extensions import csrf, limiter
from app.services.email_worker import process_jobs, process_job, recover_stale_jobs
from app.services.policy import bearer_secret_required
from app.utils.helpers import safe_int
from . import bp

MAX_SWEEP_LIMIT = 100

@csrf.exempt
@limiter.exempt
@bp.get("/cron/process-email-jobs")
@bearer_secret_required("CRON_SECRET")
def cron_process_email_jobs():
    """Scheduler sweep: recover stale claims, then process one batch. Empty 200 on success."""
    default_limit = current_app.config.get("EMAIL_JOB_BATCH_LIMIT", 10)
    limit = safe_int(request.args.get("limit"), default_limit, lo=1, hi=MAX_SWEEP_LIMIT)
    try:
        recover_stale_jobs()
        process_jobs(limit)
    except Exception:
        current_app.logger.exception("email_cron_failed")
        return Response(status=500)
    return Response(status=200)

@csrf.exempt
@limiter.exempt
@bp.post("/email-jobs/process")
@bearer_secret_required("CRON_SECRET")
def event_process_email_job():
    """Event delivery: {"job_id": ...}. Redelivery of a finished/claimed job is a no-op."""
    payload = request.get_json(silent=True) or {}
    job_id = safe_int(payload.get("job_id") or payload.get("jobId"), 0)
    if job_id <= 0:
        return jsonify({"error": "job_id_required", "code": 400}), 400
    try:
        result = process_job(job_id)
    except Exception:
        current_app.logger.exception("email_event_failed")
        return jsonify({"error": "processing_failed", "code": 500}), 500
    current_app.logger.debug(json.dumps({"event": "email_event_processed", "job_id": job_id, **result}))
    return jsonify(result), 200
