from flask import request, jsonify

from app.models.user import ROLE_ADMIN
from app.services.email_errors import ValidationError
from app.services.email_stats import get_email_statistics, get_queue_status
from app.services import email_admin
from app.services.policy import role_required
from app.utils.helpers import safe_int
from . import bp

def _json_body() -> dict:
    return request.get_json(silent=True) or {}

@bp.errorhandler(ValidationError)
def _validation_error(e):
    return jsonify({"error": "validation_error", "message": str(e), "code": 400}), 400

@bp.get("/email/stats")
@role_required(ROLE_ADMIN)
def email_stats():
    return jsonify(get_email_statistics())

@bp.get("/email/queue")
@role_required(ROLE_ADMIN)
def email_queue_status():
    return jsonify(get_queue_status())

@bp.get("/email/logs")
@role_required(ROLE_ADMIN)
def email_logs():
    return jsonify(email_admin.list_email_logs(request.args.to_dict()))

@bp.get("/email/counters")
@role_required(ROLE_ADMIN)
def email_counters():
    return jsonify(email_admin.list_email_counters(request.args.to_dict()))

@bp.get("/email/users")
@role_required(ROLE_ADMIN)
def email_filter_users():
    return jsonify({"users": email_admin.users_for_filter()})

@bp.post("/email/logs/delete")
@role_required(ROLE_ADMIN)
def email_logs_delete():
    deleted = email_admin.delete_email_logs(_json_body().get("ids"))
    return jsonify({"success": True, "deleted_count": deleted})

@bp.post("/email/logs/cleanup")
@role_required(ROLE_ADMIN)
def email_logs_cleanup():
    days_old = safe_int(_json_body().get("days_old"), 30, lo=1)
    deleted = email_admin.cleanup_old_email_logs(days_old)
    return jsonify({
        "success": True,
        "deleted_count": deleted,
        "message": f"Deleted {deleted} email logs older than {days_old} days",
    })

@bp.post("/email/counters/delete")
@role_required(ROLE_ADMIN)
def email_counters_delete():
    deleted = email_admin.delete_email_counters(_json_body().get("ids"))
    return jsonify({"success": True, "deleted_count": deleted})

@bp.post("/email/counters/<int:counter_id>/reset")
@role_required(ROLE_ADMIN)
def email_counter_reset(counter_id):
    counter = email_admin.reset_email_counter(counter_id)
    if counter is None:
        return jsonify({"error": "not_found", "code": 404}), 404
    return jsonify({"success": True, "counter": counter.to_dict()})

@bp.post("/email/jobs/<int:job_id>/retry")
@role_required(ROLE_ADMIN)
def email_job_retry(job_id):
    job = email_admin.retry_failed_job(job_id)
    if job is None:
        return jsonify({"error": "not_found", "code": 404}), 404
    return jsonify({"success": True, "job": job.to_dict()})
