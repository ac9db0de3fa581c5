"""
Repository for scrape job rows: claims, status queries and retention.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.orm import Session

from db.models.scrape_job import ScrapeJobRecord

WAITING = "waiting"
ACTIVE = "active"


class ScrapeJobRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, record: ScrapeJobRecord) -> ScrapeJobRecord:
        self._session.add(record)
        self._session.flush()
        self._session.refresh(record)
        return record

    def exists(self, job_id: str) -> bool:
        stmt = select(ScrapeJobRecord.seq).where(ScrapeJobRecord.job_id == job_id)
        return self._session.scalar(stmt) is not None

    def get(self, job_id: str, *, for_update: bool = False) -> ScrapeJobRecord | None:
        stmt = select(ScrapeJobRecord).where(ScrapeJobRecord.job_id == job_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.scalars(stmt).first()

    def next_eligible(self, *, now: datetime) -> ScrapeJobRecord | None:
        """
        Lock the best eligible waiting row, skipping rows other workers hold.
        """

        stmt = (
            self._eligible_query(now)
            .order_by(ScrapeJobRecord.priority.desc(), ScrapeJobRecord.seq.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        return self._session.scalars(stmt).first()

    def list_eligible(self, *, now: datetime, limit: int) -> list[ScrapeJobRecord]:
        stmt = (
            self._eligible_query(now)
            .order_by(ScrapeJobRecord.priority.desc(), ScrapeJobRecord.seq.asc())
            .limit(max(0, limit))
        )
        return list(self._session.scalars(stmt).all())

    def list_delayed(self, *, now: datetime, limit: int) -> list[ScrapeJobRecord]:
        stmt = (
            select(ScrapeJobRecord)
            .where(ScrapeJobRecord.status == WAITING, ScrapeJobRecord.delay_until > now)
            .order_by(ScrapeJobRecord.delay_until.asc(), ScrapeJobRecord.seq.asc())
            .limit(max(0, limit))
        )
        return list(self._session.scalars(stmt).all())

    def list_by_status(self, status: str, *, limit: int) -> list[ScrapeJobRecord]:
        stmt: Select[tuple[ScrapeJobRecord]] = select(ScrapeJobRecord).where(
            ScrapeJobRecord.status == status
        )
        if status == ACTIVE:
            stmt = stmt.order_by(ScrapeJobRecord.priority.desc(), ScrapeJobRecord.seq.asc())
        else:
            stmt = stmt.order_by(ScrapeJobRecord.finished_at.desc(), ScrapeJobRecord.seq.desc())
        return list(self._session.scalars(stmt.limit(max(0, limit))).all())

    def count_by_status(self) -> dict[str, int]:
        stmt = select(ScrapeJobRecord.status, func.count()).group_by(ScrapeJobRecord.status)
        return {status: int(count) for status, count in self._session.execute(stmt).all()}

    def count_delayed(self, *, now: datetime) -> int:
        stmt = select(func.count()).where(
            ScrapeJobRecord.status == WAITING,
            ScrapeJobRecord.delay_until > now,
        )
        return int(self._session.scalar(stmt) or 0)

    def list_stalled(self, *, now: datetime) -> list[ScrapeJobRecord]:
        stmt = select(ScrapeJobRecord).where(
            ScrapeJobRecord.status == ACTIVE,
            ScrapeJobRecord.heartbeat_deadline < now,
        )
        return list(self._session.scalars(stmt).all())

    def delete(self, job_id: str) -> bool:
        result = self._session.execute(delete(ScrapeJobRecord).where(ScrapeJobRecord.job_id == job_id))
        return bool(result.rowcount)

    def delete_oldest_beyond(self, status: str, *, keep: int) -> int:
        stale_ids = select(ScrapeJobRecord.seq).where(ScrapeJobRecord.status == status)
        stale_ids = stale_ids.order_by(
            ScrapeJobRecord.finished_at.desc(),
            ScrapeJobRecord.seq.desc(),
        ).offset(max(0, keep))
        seqs = list(self._session.scalars(stale_ids).all())
        if not seqs:
            return 0
        self._session.execute(delete(ScrapeJobRecord).where(ScrapeJobRecord.seq.in_(seqs)))
        return len(seqs)

    @staticmethod
    def _eligible_query(now: datetime) -> Select[tuple[ScrapeJobRecord]]:
        return select(ScrapeJobRecord).where(
            ScrapeJobRecord.status == WAITING,
            or_(ScrapeJobRecord.delay_until.is_(None), ScrapeJobRecord.delay_until <= now),
        )
