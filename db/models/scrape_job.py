"""
db/models/scrape_job.py

Durable scrape job row backing the SQLAlchemy job store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

JSONType = JSON().with_variant(JSONB(), "postgresql")
SequenceType = BigInteger().with_variant(Integer(), "sqlite")


class ScrapeJobRecord(Base, TimestampMixin):
    __tablename__ = "scrape_jobs"

    seq: Mapped[int] = mapped_column(
        SequenceType,
        primary_key=True,
        autoincrement=True,
        comment="Monotonic enqueue order used as the FIFO tie-breaker",
    )
    job_id: Mapped[str] = mapped_column(String(64), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    brand: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="waiting, active, completed, failed",
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stalled_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delay_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    job_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
    )
    worker_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    heartbeat_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    progress: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    enqueued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("job_id", name="uq_scrape_jobs_job_id"),
        Index("ix_scrape_jobs_status_priority_seq", "status", "priority", "seq"),
        Index("ix_scrape_jobs_status_finished_at", "status", "finished_at"),
        Index("ix_scrape_jobs_brand", "brand"),
    )
