"""
Celery wiring for the email pipeline: one task per job for event-driven
delivery and a batch task for the periodic sweep (beat schedule in config).
"""
from celery import Celery, Task, shared_task
from flask import Flask


def celery_init_app(app: Flask) -> Celery:
    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery(app.name, task_cls=FlaskTask)
    celery_app.config_from_object(app.config["CELERY"])
    celery_app.set_default()
    app.extensions["celery"] = celery_app
    return celery_app


@shared_task(name="email.process_job", ignore_result=True)
def process_email_job_task(job_id: int) -> dict:
    from app.services.email_worker import process_job
    return process_job(job_id)


@shared_task(name="email.process_jobs", ignore_result=True)
def process_email_jobs_task(limit: int | None = None) -> dict:
    from app.services.email_worker import process_jobs, recover_stale_jobs
    recover_stale_jobs()
    return process_jobs(limit)
