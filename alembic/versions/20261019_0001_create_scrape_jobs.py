"""create scrape_jobs table

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    json_type = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
    op.create_table(
        "scrape_jobs",
        sa.Column("seq", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), autoincrement=True, nullable=False),
        sa.Column("job_id", sa.String(length=64), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("brand", sa.String(length=120), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False),
        sa.Column("stalled_count", sa.Integer(), nullable=False),
        sa.Column("delay_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", json_type, nullable=False),
        sa.Column("worker_id", sa.String(length=120), nullable=True),
        sa.Column("heartbeat_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("progress", json_type, nullable=False),
        sa.Column("result", json_type, nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("seq", name="pk_scrape_jobs"),
        sa.UniqueConstraint("job_id", name="uq_scrape_jobs_job_id"),
    )
    op.create_index("ix_scrape_jobs_brand", "scrape_jobs", ["brand"], unique=False)
    op.create_index(
        "ix_scrape_jobs_status_finished_at",
        "scrape_jobs",
        ["status", "finished_at"],
        unique=False,
    )
    op.create_index(
        "ix_scrape_jobs_status_priority_seq",
        "scrape_jobs",
        ["status", "priority", "seq"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_scrape_jobs_status_priority_seq", table_name="scrape_jobs")
    op.drop_index("ix_scrape_jobs_status_finished_at", table_name="scrape_jobs")
    op.drop_index("ix_scrape_jobs_brand", table_name="scrape_jobs")
    op.drop_table("scrape_jobs")
