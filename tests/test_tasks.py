from app.extensions import db
from app.models import EmailJob
from app.models.email_job import STATUS_SENT, TYPE_VERIFICATION
from app.services.email_queue import enqueue_email_job
from app.tasks import process_email_job_task, process_email_jobs_task


def _enqueue(app, user_id):
    with app.app_context():
        return enqueue_email_job(type=TYPE_VERIFICATION, user_id=user_id, email="student@example.test",
                                 subject="Hi", html="<p>hi</p>")


def test_celery_app_is_registered(app):
    celery_app = app.extensions["celery"]
    assert "email.process_job" in celery_app.tasks
    assert "email.process_jobs" in celery_app.tasks


def test_sweep_task_runs_eagerly(app, student_id):
    job_id = _enqueue(app, student_id)
    result = process_email_jobs_task.apply(kwargs={"limit": 5}).get()
    assert result == {"processed": 1, "sent": 1, "failed": 0}
    with app.app_context():
        assert db.session.get(EmailJob, job_id).status == STATUS_SENT


def test_single_job_task(app, student_id):
    job_id = _enqueue(app, student_id)
    assert process_email_job_task.apply(args=[job_id]).get()["sent"] == 1
    assert process_email_job_task.apply(args=[job_id]).get()["processed"] == 0
