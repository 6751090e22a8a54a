import json
from datetime import timedelta

from app.extensions import db
from app.models import EmailJob, EmailLog, User
from app.models.email_job import STATUS_PROCESSING, STATUS_QUEUED, STATUS_SENT, TYPE_VERIFICATION
from app.services.email_queue import enqueue_email_job
from app.utils.helpers import utcnow


def _enqueue(app, user_id):
    with app.app_context():
        return enqueue_email_job(type=TYPE_VERIFICATION, user_id=user_id, email="student@example.test",
                                 subject="Hi", html="<p>hi</p>")


def test_emails_process(app, student_id):
    job_id = _enqueue(app, student_id)
    result = app.test_cli_runner().invoke(args=["emails", "process", "--limit", "5"])
    assert result.exit_code == 0, result.output
    assert "processed=1 sent=1 failed=0 recovered=0" in result.output
    with app.app_context():
        assert db.session.get(EmailJob, job_id).status == STATUS_SENT


def test_emails_recover_stale(app, student_id):
    with app.app_context():
        now = utcnow()
        job = EmailJob(type=TYPE_VERIFICATION, user_id=student_id, email="student@example.test", subject="s",
                       html="<p>x</p>", status=STATUS_PROCESSING, attempts=0, max_attempts=3, next_run_at=now,
                       claimed_at=now - timedelta(seconds=120), created_at=now, updated_at=now)
        db.session.add(job)
        db.session.commit()
        job_id = job.id

    result = app.test_cli_runner().invoke(args=["emails", "recover-stale", "--older-than", "60"])
    assert result.exit_code == 0, result.output
    assert "recovered=1" in result.output
    with app.app_context():
        assert db.session.get(EmailJob, job_id).status == STATUS_QUEUED


def test_emails_cleanup_logs(app, student_id):
    with app.app_context():
        db.session.add(EmailLog(user_id=student_id, email="student@example.test", type=TYPE_VERIFICATION,
                                created_at=utcnow() - timedelta(days=10)))
        db.session.commit()

    runner = app.test_cli_runner()
    assert "Deleted 0 email logs" in runner.invoke(args=["emails", "cleanup-logs", "--days", "30"]).output
    assert "Deleted 1 email logs" in runner.invoke(args=["emails", "cleanup-logs", "--days", "7"]).output
    assert runner.invoke(args=["emails", "cleanup-logs", "--days", "0"]).exit_code != 0


def test_emails_stats(app, student_id):
    _enqueue(app, student_id)
    result = app.test_cli_runner().invoke(args=["emails", "stats"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["queue"][STATUS_QUEUED] == 1
    assert payload["system_quota"]["today"] == 0


def test_users_create_admin(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["users", "create-admin", "--email", "Boss@Example.test", "--password", "pw-12345678"])
    assert result.exit_code == 0, result.output
    with app.app_context():
        user = db.session.execute(db.select(User).where(User.email == "boss@example.test")).scalar_one()
        assert user.is_admin
        assert user.email_verified_at is not None
        assert user.check_password("pw-12345678")

    again = runner.invoke(args=["users", "create-admin", "--email", "boss@example.test", "--password", "x"])
    assert again.exit_code != 0
    assert "User already exists" in again.output
