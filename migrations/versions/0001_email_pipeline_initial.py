"""initial schema: users + email pipeline (jobs, counters, logs)

Revision ID: 0001_email_pipeline
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_email_pipeline'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="STUDENT"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_verified_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('STUDENT','ADMIN')", name="ck_users_role_valid"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "email_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("html", sa.Text(), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="QUEUED"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("next_run_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_email_jobs_type", "email_jobs", ["type"])
    op.create_index("ix_email_jobs_user_id", "email_jobs", ["user_id"])
    op.create_index("ix_email_jobs_status", "email_jobs", ["status"])
    op.create_index("ix_email_jobs_created_at", "email_jobs", ["created_at"])
    op.create_index("ix_email_jobs_status_next_run_at", "email_jobs", ["status", "next_run_at"])

    op.create_table(
        "email_counters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scope", sa.String(length=10), nullable=False),
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("scope", "key", "date", name="uq_email_counters_scope_key_date"),
        sa.CheckConstraint("scope IN ('USER','GLOBAL')", name="ck_email_counters_scope_valid"),
    )
    op.create_index("ix_email_counters_date", "email_counters", ["date"])
    op.create_index("ix_email_counters_user_id", "email_counters", ["user_id"])

    op.create_table(
        "email_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("email_jobs.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_email_logs_user_id", "email_logs", ["user_id"])
    op.create_index("ix_email_logs_email", "email_logs", ["email"])
    op.create_index("ix_email_logs_type", "email_logs", ["type"])
    op.create_index("ix_email_logs_created_at", "email_logs", ["created_at"])
    op.create_index("ix_email_logs_user_id_created_at", "email_logs", ["user_id", "created_at"])


def downgrade():
    op.drop_index("ix_email_logs_user_id_created_at", table_name="email_logs")
    op.drop_index("ix_email_logs_created_at", table_name="email_logs")
    op.drop_index("ix_email_logs_type", table_name="email_logs")
    op.drop_index("ix_email_logs_email", table_name="email_logs")
    op.drop_index("ix_email_logs_user_id", table_name="email_logs")
    op.drop_table("email_logs")

    op.drop_index("ix_email_counters_user_id", table_name="email_counters")
    op.drop_index("ix_email_counters_date", table_name="email_counters")
    op.drop_table("email_counters")

    op.drop_index("ix_email_jobs_status_next_run_at", table_name="email_jobs")
    op.drop_index("ix_email_jobs_created_at", table_name="email_jobs")
    op.drop_index("ix_email_jobs_status", table_name="email_jobs")
    op.drop_index("ix_email_jobs_user_id", table_name="email_jobs")
    op.drop_index("ix_email_jobs_type", table_name="email_jobs")
    op.drop_table("email_jobs")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
