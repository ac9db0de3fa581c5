"""
crawler/domain/jobs.py

Scrape job lifecycle models.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class JobStatus:
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    # Derived view: waiting jobs whose delay_until is still in the future.
    DELAYED = "delayed"

    STORED = frozenset({WAITING, ACTIVE, COMPLETED, FAILED})
    TERMINAL = frozenset({COMPLETED, FAILED})
    QUERYABLE = frozenset({WAITING, ACTIVE, COMPLETED, FAILED, DELAYED})


class JobProgress:
    INITIALIZING = "initializing"
    NAVIGATING = "navigating"
    EXTRACTING = "extracting"
    VALIDATING = "validating"

    STAGES = (INITIALIZING, NAVIGATING, EXTRACTING, VALIDATING)


PRIORITY_URGENT = 100


@dataclass
class ScrapeJob:
    """
    One URL to crawl for one brand, plus its queue bookkeeping.
    """

    url: str
    brand: str
    id: str = ""
    priority: int = 0
    max_attempts: int = 3
    attempt_count: int = 0
    delay_until: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    status: str = JobStatus.WAITING
    sequence: int = 0
    enqueued_at: datetime | None = None
    worker_id: str | None = None
    heartbeat_deadline: datetime | None = None
    stalled_count: int = 0
    progress: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    last_error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def is_delayed(self, now: datetime) -> bool:
        return (
            self.status == JobStatus.WAITING
            and self.delay_until is not None
            and self.delay_until > now
        )

    def is_eligible(self, now: datetime) -> bool:
        return self.status == JobStatus.WAITING and not self.is_delayed(now)

    def copy(self) -> "ScrapeJob":
        return copy.deepcopy(self)


@dataclass(frozen=True)
class QueueStats:
    active: int
    waiting: int
    completed: int
    failed: int
    delayed: int

    def as_dict(self) -> dict[str, int]:
        return {
            "active": self.active,
            "waiting": self.waiting,
            "completed": self.completed,
            "failed": self.failed,
            "delayed": self.delayed,
        }


@dataclass(frozen=True)
class BulkItemError:
    index: int
    url: str
    error: str


@dataclass(frozen=True)
class BulkEnqueueResult:
    """
    Outcome of a bulk enqueue; one bad item never blocks the others.
    """

    job_ids: list[str] = field(default_factory=list)
    errors: list[BulkItemError] = field(default_factory=list)

    @property
    def enqueued(self) -> int:
        return len(self.job_ids)


@dataclass(frozen=True)
class FailureRecord:
    """
    Terminal failure reported downstream for a job that exhausted its budget.
    """

    job_id: str
    url: str
    brand: str
    reason: str
    attempts: int
