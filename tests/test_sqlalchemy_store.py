"""
tests/test_sqlalchemy_store.py

Durable store specifics: state shared across store instances, JSON columns
and timezone handling on SQLite.
"""

from __future__ import annotations

from datetime import timezone

import pytest

from conftest import FakeUTCClock
from crawler.domain.jobs import JobStatus, ScrapeJob
from crawler.errors import DuplicateJobError
from crawler.queue import JobQueue, SQLAlchemyJobStore
from db.session import create_session_factory


class TestSQLAlchemyJobStore:
    def test_jobs_survive_a_new_store_instance(self, sqlite_session_factory, utc_clock: FakeUTCClock) -> None:
        producer = JobQueue(store=SQLAlchemyJobStore(sqlite_session_factory), clock=utc_clock)
        job_id = producer.enqueue(
            ScrapeJob(
                url="https://www.zara.com/us/en/shirt-p0123.html",
                brand="zara",
                metadata={"source": "catalog", "tags": ["fall"]},
            )
        )

        consumer = JobQueue(store=SQLAlchemyJobStore(sqlite_session_factory), clock=utc_clock)
        job = consumer.dequeue("w-1")

        assert job.id == job_id
        assert job.metadata == {"source": "catalog", "tags": ["fall"]}
        assert job.started_at == utc_clock.now
        assert job.started_at.tzinfo is timezone.utc

        assert consumer.complete(job_id, {"name": "Shirt", "base_price": 2990}, worker_id="w-1")
        stored = producer.get(job_id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.result == {"name": "Shirt", "base_price": 2990}

    def test_duplicate_id_is_rejected(self, sqlite_session_factory) -> None:
        store = SQLAlchemyJobStore(sqlite_session_factory)
        queue = JobQueue(store=store)
        queue.enqueue(ScrapeJob(id="fixed", url="https://www.hm.com/p/1", brand="hm"))

        with pytest.raises(DuplicateJobError):
            queue.enqueue(ScrapeJob(id="fixed", url="https://www.hm.com/p/2", brand="hm"))

    def test_sequence_increases_with_enqueue_order(self, sqlite_session_factory) -> None:
        queue = JobQueue(store=SQLAlchemyJobStore(sqlite_session_factory))
        first = queue.enqueue(ScrapeJob(url="https://www.hm.com/p/1", brand="hm"))
        second = queue.enqueue(ScrapeJob(url="https://www.hm.com/p/2", brand="hm"))
        assert queue.get(first).sequence < queue.get(second).sequence

    def test_ping(self, sqlite_session_factory, tmp_path) -> None:
        assert SQLAlchemyJobStore(sqlite_session_factory).ping() is True

        unreachable = create_session_factory(f"sqlite:///{tmp_path / 'missing' / 'jobs.db'}")
        assert SQLAlchemyJobStore(unreachable).ping() is False
