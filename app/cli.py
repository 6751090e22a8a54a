import json

import click
from flask.cli import with_appcontext
from app.extensions import db
from app.models.user import User, ROLE_ADMIN
from app.utils.helpers import utcnow
from app.services.email_worker import process_jobs, recover_stale_jobs
from app.services.email_admin import cleanup_old_email_logs
from app.services.email_stats import get_email_statistics, get_queue_status

@click.group()
def emails():
    """Email queue operations."""

@emails.command("process")
@click.option("--limit", type=int, default=None, help="Max jobs to claim (default: EMAIL_JOB_BATCH_LIMIT)")
@click.option("--recover/--no-recover", default=True, help="Requeue stale PROCESSING jobs first")
@with_appcontext
def emails_process(limit, recover):
    recovered = recover_stale_jobs() if recover else 0
    result = process_jobs(limit)
    click.echo(
        f"processed={result['processed']} sent={result['sent']} failed={result['failed']} recovered={recovered}"
    )

@emails.command("recover-stale")
@click.option("--older-than", "older_than", type=int, default=None, help="Seconds since claim (default: EMAIL_JOB_STALE_SECONDS)")
@with_appcontext
def emails_recover_stale(older_than):
    count = recover_stale_jobs(older_than)
    click.echo(f"recovered={count}")

@emails.command("cleanup-logs")
@click.option("--days", type=int, default=30, show_default=True)
@with_appcontext
def emails_cleanup_logs(days):
    if days < 1:
        raise click.ClickException("--days must be at least 1")
    deleted = cleanup_old_email_logs(days)
    click.echo(f"Deleted {deleted} email logs older than {days} days")

@emails.command("stats")
@with_appcontext
def emails_stats():
    stats = get_email_statistics()
    payload = {
        "system_quota": stats["system_quota"],
        "total_emails": stats["total_emails"],
        "user_limit": stats["user_limit"],
        "queue": get_queue_status()["counts"],
    }
    click.echo(json.dumps(payload, indent=2))

@click.group()
def users():
    """User management."""

@users.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", default="Admin")
@with_appcontext
def users_create_admin(email, password, name):
    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).count():
        raise click.ClickException("User already exists")

    user = User(email=email, name=name, role=ROLE_ADMIN, is_active=True, email_verified_at=utcnow())
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    click.echo(f"Admin created id={user.id} email={user.email}")

def register_cli(app):
    app.cli.add_command(emails)
    app.cli.add_command(users)
