"""
Async worker pool: dequeue, crawl, deliver, report.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass

from crawler.config.models import WorkerSettings
from crawler.domain.jobs import FailureRecord, JobProgress, JobStatus, ScrapeJob
from crawler.engine import CrawlEngine
from crawler.errors import ProductRejectedError, RateLimitedError
from crawler.logging_utils import log_event
from crawler.queue.job_queue import JobQueue
from crawler.registry import AdapterRegistry
from crawler.sinks.base import ProductSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerStats:
    is_running: bool
    concurrency: int
    processed: int
    failed: int
    in_flight: int
    uptime_seconds: float
    success_rate: float

    @property
    def total(self) -> int:
        return self.processed + self.failed

    @property
    def failure_rate(self) -> float:
        return 1.0 - self.success_rate if self.total else 0.0

    def as_dict(self) -> dict[str, object]:
        return {
            "is_running": self.is_running,
            "concurrency": self.concurrency,
            "processed": self.processed,
            "failed": self.failed,
            "in_flight": self.in_flight,
            "uptime_seconds": round(self.uptime_seconds, 3),
            "success_rate": round(self.success_rate, 4),
        }


class WorkerPool:
    """
    Runs ``concurrency`` asyncio workers against one ``JobQueue``.

    Every claimed job ends in ``complete``, ``fail`` or, when its domain is
    rate limited for longer than ``max_rate_wait_seconds``, ``defer``. An
    exception inside one job never stops its worker. Jobs interrupted by a
    hard stop are left active and come back through stall recovery.
    """

    def __init__(
        self,
        *,
        queue: JobQueue,
        engine: CrawlEngine,
        registry: AdapterRegistry,
        sink: ProductSink,
        settings: WorkerSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        worker_prefix: str = "worker",
    ) -> None:
        self._queue = queue
        self._engine = engine
        self._registry = registry
        self._sink = sink
        self._settings = settings or WorkerSettings()
        self._clock = clock
        self._worker_prefix = f"{worker_prefix}-{os.getpid()}"
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping: asyncio.Event | None = None
        self._in_flight: set[str] = set()
        self._started_at: float | None = None
        self._processed = 0
        self._failed = 0

    @property
    def is_running(self) -> bool:
        return bool(self._tasks) and not all(task.done() for task in self._tasks)

    async def start(self, concurrency: int | None = None) -> None:
        if self.is_running:
            log_event(logger, logging.WARNING, "worker_pool_already_running")
            return

        count = self._settings.concurrency if concurrency is None else concurrency
        if count < 1:
            raise ValueError(f"concurrency must be >= 1 (got {count})")

        self._stopping = asyncio.Event()
        self._started_at = self._clock()
        self._tasks = [
            asyncio.create_task(
                self._run_worker(f"{self._worker_prefix}-{index}", self._stopping),
                name=f"{self._worker_prefix}-{index}",
            )
            for index in range(count)
        ]
        log_event(logger, logging.INFO, "worker_pool_started", concurrency=count)

    async def stop(self, graceful: bool = True) -> None:
        """
        Stop claiming jobs; when graceful, let in-flight jobs finish within
        the shutdown timeout before cancelling them.
        """

        if not self._tasks:
            return
        if self._stopping is not None:
            self._stopping.set()

        pending: set[asyncio.Task[None]] = set(self._tasks)
        if graceful:
            _, pending = await asyncio.wait(
                self._tasks,
                timeout=self._settings.shutdown_timeout_seconds,
            )
        for task in pending:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        log_event(
            logger,
            logging.INFO,
            "worker_pool_stopped",
            graceful=graceful,
            cancelled=len(pending),
            processed=self._processed,
            failed=self._failed,
        )
        self._tasks = []
        self._in_flight.clear()

    def stats(self) -> WorkerStats:
        total = self._processed + self._failed
        uptime = self._clock() - self._started_at if self._started_at is not None and self.is_running else 0.0
        return WorkerStats(
            is_running=self.is_running,
            concurrency=len(self._tasks),
            processed=self._processed,
            failed=self._failed,
            in_flight=len(self._in_flight),
            uptime_seconds=uptime,
            success_rate=self._processed / total if total else 1.0,
        )

    def reset_stats(self) -> None:
        self._processed = 0
        self._failed = 0
        self._started_at = self._clock() if self.is_running else None

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    async def _run_worker(self, worker_id: str, stopping: asyncio.Event) -> None:
        log_event(logger, logging.DEBUG, "worker_started", worker_id=worker_id)

        while not stopping.is_set():
            job = await asyncio.to_thread(self._queue.dequeue, worker_id)
            if job is None:
                try:
                    await asyncio.wait_for(stopping.wait(), timeout=self._settings.poll_interval_seconds)
                except asyncio.TimeoutError:
                    continue
                break

            self._in_flight.add(job.id)
            try:
                await self.process_job(job, worker_id)
            except Exception as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "worker_job_crashed",
                    worker_id=worker_id,
                    job_id=job.id,
                    error=f"{type(exc).__name__}: {exc}",
                )
            finally:
                self._in_flight.discard(job.id)

        log_event(logger, logging.DEBUG, "worker_stopped", worker_id=worker_id)

    async def process_job(self, job: ScrapeJob, worker_id: str) -> None:
        """
        Run one claimed job to a ``complete``, ``fail`` or ``defer`` report.
        """

        await self._heartbeat(job.id, worker_id, JobProgress.INITIALIZING)
        keep_alive = asyncio.create_task(self._keep_alive(job.id, worker_id))

        async def on_progress(stage: str) -> None:
            await self._heartbeat(job.id, worker_id, stage)

        timeout = self._settings.job_timeout_seconds
        try:
            adapter = self._registry.get(job.brand)
            product = await asyncio.wait_for(
                self._engine.fetch_and_extract(
                    job.url,
                    adapter,
                    on_progress,
                    max_rate_wait_seconds=self._settings.max_rate_wait_seconds,
                ),
                timeout=timeout,
            )
            await self._sink.deliver(job, product)
        except RateLimitedError as exc:
            await asyncio.to_thread(self._queue.defer, job.id, exc.wait_seconds, worker_id=worker_id)
            return
        except ProductRejectedError as exc:
            await self._report_failure(job, worker_id, str(exc), retryable=False)
            return
        except asyncio.TimeoutError:
            await self._report_failure(job, worker_id, f"Job timed out after {timeout}s", retryable=True)
            return
        except Exception as exc:
            await self._report_failure(job, worker_id, f"{type(exc).__name__}: {exc}", retryable=True)
            return
        finally:
            keep_alive.cancel()
            await asyncio.gather(keep_alive, return_exceptions=True)

        await asyncio.to_thread(self._queue.complete, job.id, product.to_dict(), worker_id)
        self._processed += 1

    async def _report_failure(
        self,
        job: ScrapeJob,
        worker_id: str,
        error: str,
        *,
        retryable: bool,
    ) -> None:
        self._failed += 1
        updated = await asyncio.to_thread(
            self._queue.fail,
            job.id,
            error,
            retryable=retryable,
            worker_id=worker_id,
        )
        if updated is not None and updated.status == JobStatus.FAILED:
            await self._sink.report_failure(
                FailureRecord(
                    job_id=job.id,
                    url=job.url,
                    brand=job.brand,
                    reason=error,
                    attempts=updated.attempt_count,
                )
            )

    async def _heartbeat(self, job_id: str, worker_id: str, stage: str | None) -> None:
        await asyncio.to_thread(self._queue.heartbeat, job_id, worker_id, stage)

    async def _keep_alive(self, job_id: str, worker_id: str) -> None:
        # Long navigations would otherwise outlive the heartbeat deadline.
        interval = max(1.0, self._queue.settings.heartbeat_timeout_seconds / 3)
        while True:
            await asyncio.sleep(interval)
            await self._heartbeat(job_id, worker_id, None)
