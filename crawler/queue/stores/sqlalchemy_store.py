"""
Durable job store on SQLAlchemy.

Claims use ``SELECT ... FOR UPDATE SKIP LOCKED`` on PostgreSQL so several
worker processes can share one table; SQLite ignores the lock clause and is
meant for local single-process runs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from crawler.domain.jobs import JobStatus, QueueStats, ScrapeJob
from crawler.errors import DuplicateJobError
from crawler.logging_utils import log_event
from crawler.queue.stores.base import JobMutation, JobStore
from db.models.scrape_job import ScrapeJobRecord
from db.repositories.scrape_job_repository import ScrapeJobRepository

logger = logging.getLogger(__name__)


class SQLAlchemyJobStore(JobStore):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Iterator[ScrapeJobRepository]:
        session: Session = self._session_factory()
        try:
            yield ScrapeJobRepository(session)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def add(self, job: ScrapeJob) -> ScrapeJob:
        try:
            with self._transaction() as repo:
                if repo.exists(job.id):
                    raise DuplicateJobError(f"Job id already exists: {job.id}")
                record = repo.add(_to_record(job))
                stored = _to_job(record)
        except IntegrityError as exc:
            raise DuplicateJobError(f"Job id already exists: {job.id}") from exc
        return stored

    def get(self, job_id: str) -> ScrapeJob | None:
        with self._transaction() as repo:
            record = repo.get(job_id)
            return _to_job(record) if record is not None else None

    def claim_next(
        self,
        *,
        worker_id: str,
        now: datetime,
        heartbeat_deadline: datetime,
    ) -> ScrapeJob | None:
        with self._transaction() as repo:
            record = repo.next_eligible(now=now)
            if record is None:
                return None
            record.status = JobStatus.ACTIVE
            record.worker_id = worker_id
            record.heartbeat_deadline = heartbeat_deadline
            record.started_at = now
            record.delay_until = None
            return _to_job(record)

    def update(self, job_id: str, mutate: JobMutation) -> ScrapeJob | None:
        with self._transaction() as repo:
            record = repo.get(job_id, for_update=True)
            if record is None:
                return None
            job = _to_job(record)
            if not mutate(job):
                return None
            _apply(record, job)
            return _to_job(record)

    def delete(self, job_id: str) -> bool:
        with self._transaction() as repo:
            return repo.delete(job_id)

    def list_by_status(self, status: str, *, now: datetime, limit: int) -> list[ScrapeJob]:
        with self._transaction() as repo:
            if status == JobStatus.WAITING:
                records = repo.list_eligible(now=now, limit=limit)
            elif status == JobStatus.DELAYED:
                records = repo.list_delayed(now=now, limit=limit)
            else:
                records = repo.list_by_status(status, limit=limit)
            return [_to_job(record) for record in records]

    def counts(self, *, now: datetime) -> QueueStats:
        with self._transaction() as repo:
            by_status = repo.count_by_status()
            delayed = repo.count_delayed(now=now)
        return QueueStats(
            active=by_status.get(JobStatus.ACTIVE, 0),
            waiting=by_status.get(JobStatus.WAITING, 0) - delayed,
            completed=by_status.get(JobStatus.COMPLETED, 0),
            failed=by_status.get(JobStatus.FAILED, 0),
            delayed=delayed,
        )

    def list_stalled(self, *, now: datetime) -> list[ScrapeJob]:
        with self._transaction() as repo:
            return [_to_job(record) for record in repo.list_stalled(now=now)]

    def trim_terminal(self, status: str, *, keep: int) -> int:
        with self._transaction() as repo:
            return repo.delete_oldest_beyond(status, keep=keep)

    def ping(self) -> bool:
        session: Session = self._session_factory()
        try:
            session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            log_event(logger, logging.WARNING, "job_store_ping_failed", error=str(exc))
            return False
        finally:
            session.close()


# ----------------------------------------------------------------------
# Row mapping
# ----------------------------------------------------------------------


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; every stored value is UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_record(job: ScrapeJob) -> ScrapeJobRecord:
    record = ScrapeJobRecord(job_id=job.id)
    _apply(record, job)
    return record


def _apply(record: ScrapeJobRecord, job: ScrapeJob) -> None:
    record.url = job.url
    record.brand = job.brand
    record.status = job.status
    record.priority = job.priority
    record.max_attempts = job.max_attempts
    record.attempt_count = job.attempt_count
    record.stalled_count = job.stalled_count
    record.delay_until = job.delay_until
    record.job_metadata = dict(job.metadata)
    record.worker_id = job.worker_id
    record.heartbeat_deadline = job.heartbeat_deadline
    record.progress = dict(job.progress)
    record.result = dict(job.result) if job.result is not None else None
    record.last_error = job.last_error
    record.enqueued_at = job.enqueued_at
    record.started_at = job.started_at
    record.finished_at = job.finished_at


def _to_job(record: ScrapeJobRecord) -> ScrapeJob:
    return ScrapeJob(
        id=record.job_id,
        url=record.url,
        brand=record.brand,
        priority=record.priority,
        max_attempts=record.max_attempts,
        attempt_count=record.attempt_count,
        delay_until=_utc(record.delay_until),
        metadata=dict(record.job_metadata or {}),
        status=record.status,
        sequence=record.seq,
        enqueued_at=_utc(record.enqueued_at),
        worker_id=record.worker_id,
        heartbeat_deadline=_utc(record.heartbeat_deadline),
        stalled_count=record.stalled_count,
        progress=dict(record.progress or {}),
        result=dict(record.result) if record.result is not None else None,
        last_error=record.last_error,
        started_at=_utc(record.started_at),
        finished_at=_utc(record.finished_at),
    )
