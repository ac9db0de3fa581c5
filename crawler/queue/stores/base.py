"""
Storage interface for scrape jobs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from crawler.domain.jobs import QueueStats, ScrapeJob

# Returns True when the job was changed and must be saved.
JobMutation = Callable[[ScrapeJob], bool]


class JobStore(ABC):
    """
    Persistence contract used by ``JobQueue``.

    Implementations hand out copies; callers change stored jobs only through
    ``update``, which applies the mutation atomically.
    """

    @abstractmethod
    def add(self, job: ScrapeJob) -> ScrapeJob:
        """
        Persist a new waiting job and assign its FIFO sequence.

        Raises ``DuplicateJobError`` when the id is already stored.
        """

    @abstractmethod
    def get(self, job_id: str) -> ScrapeJob | None:
        raise NotImplementedError

    @abstractmethod
    def claim_next(
        self,
        *,
        worker_id: str,
        now: datetime,
        heartbeat_deadline: datetime,
    ) -> ScrapeJob | None:
        """
        Atomically move the best eligible waiting job to active.

        Eligible means ``delay_until`` is unset or not after ``now``; best
        means highest priority, then lowest sequence.
        """

    @abstractmethod
    def update(self, job_id: str, mutate: JobMutation) -> ScrapeJob | None:
        """
        Apply ``mutate`` under the store's lock or row lock.

        Returns the saved job, or None when the job is missing or the
        mutation declined to change it.
        """

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def list_by_status(self, status: str, *, now: datetime, limit: int) -> list[ScrapeJob]:
        """
        List jobs in ``status``; ``waiting`` excludes delayed jobs and
        ``delayed`` lists waiting jobs whose delay has not elapsed.
        """

    @abstractmethod
    def counts(self, *, now: datetime) -> QueueStats:
        raise NotImplementedError

    @abstractmethod
    def list_stalled(self, *, now: datetime) -> list[ScrapeJob]:
        """
        Active jobs whose heartbeat deadline is before ``now``.
        """

    @abstractmethod
    def trim_terminal(self, status: str, *, keep: int) -> int:
        """
        Delete the oldest finished jobs in ``status`` beyond the newest ``keep``.
        """

    @abstractmethod
    def ping(self) -> bool:
        raise NotImplementedError
