"""Initial schema with jobs, result_entries and users tables

Revision ID: 001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "jobs",
        sa.Column("id", sa.BigInteger, autoincrement=True, nullable=False),
        sa.Column("hash_id", sa.String(16), nullable=False),
        sa.Column("fingerprint", sa.String(32), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False, server_default=""),
        sa.Column("priority", sa.Integer, nullable=False, server_default="10"),
        sa.Column("queue_label", sa.Integer, nullable=False, server_default="0"),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("batch_id", sa.Integer, nullable=True),
        sa.Column("nb_retries", sa.Integer, nullable=False, server_default="0"),
        sa.Column("params", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("undelegated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("hash_id", name="uq_jobs_hash_id"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_jobs_progress_range"),
        sa.CheckConstraint("nb_retries >= 0", name="ck_jobs_nb_retries_positive"),
    )

    op.create_index("ix_jobs_domain", "jobs", ["domain"])
    op.create_index("ix_jobs_batch_id", "jobs", ["batch_id"])
    op.create_index("ix_jobs_fingerprint_created", "jobs", ["fingerprint", "created_at"])

    # Partial index for queue polling
    op.execute("""
        CREATE INDEX ix_jobs_queue_poll
        ON jobs (queue_label, priority, id)
        WHERE progress = 0
    """)

    # Partial index for stalled job sweeps
    op.execute("""
        CREATE INDEX ix_jobs_running_updated
        ON jobs (updated_at)
        WHERE progress > 0 AND progress < 100
    """)

    op.create_table(
        "result_entries",
        sa.Column("id", sa.BigInteger, autoincrement=True, nullable=False),
        sa.Column("hash_id", sa.String(16), nullable=False),
        sa.Column("level", sa.String(15), nullable=False),
        sa.Column("module", sa.String(255), nullable=False),
        sa.Column("testcase", sa.String(255), nullable=False),
        sa.Column("tag", sa.String(255), nullable=False),
        sa.Column("timestamp", sa.Float, nullable=False),
        sa.Column("args", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["hash_id"], ["jobs.hash_id"], ondelete="CASCADE"),
    )
    op.create_index("ix_result_entries_hash_id", "result_entries", ["hash_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column("username", sa.String(128), nullable=False),
        sa.Column("api_key", sa.String(512), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )


def downgrade() -> None:
    op.drop_table("users")
    op.drop_index("ix_result_entries_hash_id")
    op.drop_table("result_entries")
    op.execute("DROP INDEX IF EXISTS ix_jobs_running_updated")
    op.execute("DROP INDEX IF EXISTS ix_jobs_queue_poll")
    op.drop_index("ix_jobs_fingerprint_created")
    op.drop_index("ix_jobs_batch_id")
    op.drop_index("ix_jobs_domain")
    op.drop_table("jobs")
