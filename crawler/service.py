"""
Producer-facing crawler service: job submission, inspection, health and lifecycle.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError

from crawler.adapters.base import BrandAdapter
from crawler.config.loader import get_crawler_settings, load_adapter_configs
from crawler.config.models import CrawlerSettings
from crawler.domain.jobs import BulkEnqueueResult, BulkItemError, QueueStats, ScrapeJob
from crawler.engine import CrawlEngine
from crawler.errors import JobQueueError, JobValidationError
from crawler.logging_utils import log_event
from crawler.queue.job_queue import JobQueue
from crawler.queue.stores.base import JobStore
from crawler.queue.stores.memory import InMemoryJobStore
from crawler.queue.stores.sqlalchemy_store import SQLAlchemyJobStore
from crawler.rate_limiter import DomainRateLimiter
from crawler.registry import AdapterRegistry
from crawler.scheduler import build_scheduler
from crawler.schemas import BulkJobItem, CatalogRequest, JobRequest, JobSummary
from crawler.sinks.base import ProductSink
from crawler.sinks.memory import LoggingProductSink
from crawler.stealth import StealthSessionManager
from crawler.workers.pool import WorkerPool, WorkerStats
from db.session import create_session_factory

logger = logging.getLogger(__name__)

BRAND_DELAY_JITTER_SECONDS = 2.0
SQL_BACKENDS = {"sqlalchemy", "sql", "postgres", "postgresql", "sqlite"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def calculate_brand_delay(
    adapter: BrandAdapter,
    rng: random.Random,
    *,
    jitter_seconds: float = BRAND_DELAY_JITTER_SECONDS,
) -> float:
    """
    Seconds to hold a catalog job back so one retailer is not hit in a burst.
    """

    return adapter.config.queue_delay_seconds + rng.uniform(0, jitter_seconds)


def build_job_store(settings: CrawlerSettings) -> JobStore:
    backend = settings.store_backend.strip().lower()
    if backend == "memory":
        return InMemoryJobStore()
    if backend in SQL_BACKENDS:
        return SQLAlchemyJobStore(create_session_factory(settings.database_url))
    raise ValueError(f"Unsupported job store backend: {settings.store_backend}")


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


@dataclass(frozen=True)
class HealthReport:
    healthy: bool
    queue_healthy: bool
    worker_healthy: bool
    issues: list[str] = field(default_factory=list)
    queue: QueueStats | None = None
    workers: WorkerStats | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "queue_healthy": self.queue_healthy,
            "worker_healthy": self.worker_healthy,
            "issues": list(self.issues),
            "queue": self.queue.as_dict() if self.queue is not None else None,
            "workers": self.workers.as_dict() if self.workers is not None else None,
        }


class CrawlerService:
    """
    Facade producers call to submit and inspect crawl jobs.

    Inputs are validated before they reach the queue; in bulk calls one
    invalid item is reported and the rest are still enqueued.
    """

    def __init__(
        self,
        *,
        queue: JobQueue,
        registry: AdapterRegistry | None = None,
        workers: WorkerPool | None = None,
        engine: CrawlEngine | None = None,
        scheduler: AsyncIOScheduler | None = None,
        settings: CrawlerSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._queue = queue
        self._registry = registry or AdapterRegistry()
        self._workers = workers
        self._engine = engine
        self._scheduler = scheduler
        self._settings = settings or CrawlerSettings()
        self._clock = clock
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls,
        settings: CrawlerSettings | None = None,
        *,
        sink: ProductSink | None = None,
    ) -> "CrawlerService":
        """
        Wire queue, registry, engine, workers and scheduler from settings.
        """

        settings = settings or get_crawler_settings()
        queue = JobQueue(store=build_job_store(settings), settings=settings.queue)

        registry = AdapterRegistry()
        if settings.adapters_path:
            registry.register_configs(load_adapter_configs(config_path=settings.adapters_path))

        sessions = StealthSessionManager(settings=settings.browser)
        engine = CrawlEngine(
            settings=settings.browser,
            rate_limiter=DomainRateLimiter(settings=settings.rate_limit),
            sessions=sessions,
        )
        sink = sink or LoggingProductSink()
        workers = WorkerPool(
            queue=queue,
            engine=engine,
            registry=registry,
            sink=sink,
            settings=settings.worker,
        )
        scheduler = build_scheduler(queue=queue, settings=settings.queue, sessions=sessions, sink=sink)
        return cls(
            queue=queue,
            registry=registry,
            workers=workers,
            engine=engine,
            scheduler=scheduler,
            settings=settings,
        )

    @property
    def queue(self) -> JobQueue:
        return self._queue

    @property
    def registry(self) -> AdapterRegistry:
        return self._registry

    @property
    def workers(self) -> WorkerPool | None:
        return self._workers

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, concurrency: int | None = None) -> None:
        if self._engine is not None:
            await self._engine.start()
        if self._workers is not None:
            await self._workers.start(concurrency)
        if self._scheduler is not None and not self._scheduler.running:
            self._scheduler.start()
        log_event(logger, logging.INFO, "crawler_service_started")

    async def stop(self, graceful: bool = True) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        if self._workers is not None:
            await self._workers.stop(graceful=graceful)
        if self._engine is not None:
            await self._engine.shutdown()
        log_event(logger, logging.INFO, "crawler_service_stopped", graceful=graceful)

    # ------------------------------------------------------------------
    # Job submission
    # ------------------------------------------------------------------

    def add_job(
        self,
        url: str,
        brand: str,
        priority: int = 0,
        max_retries: int | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        try:
            request = JobRequest(
                url=url,
                brand=brand,
                priority=priority,
                max_retries=self._max_retries(max_retries),
                metadata=dict(metadata or {}),
            )
        except ValidationError as exc:
            raise JobValidationError(_validation_message(exc)) from exc

        return self._queue.enqueue(
            ScrapeJob(
                url=request.url,
                brand=request.brand,
                priority=request.priority,
                max_attempts=request.max_retries,
                metadata=request.metadata,
            )
        )

    def add_bulk_jobs(
        self,
        items: Iterable[BulkJobItem | Mapping[str, Any]],
        priority: int = 0,
        max_retries: int | None = None,
        *,
        brand_delay: bool = False,
    ) -> BulkEnqueueResult:
        """
        Enqueue every valid item; invalid items come back as per-index errors.
        """

        attempts = self._max_retries(max_retries)
        now = self._clock()
        job_ids: list[str] = []
        errors: list[BulkItemError] = []

        for index, item in enumerate(items):
            raw_url = item.url if isinstance(item, BulkJobItem) else str(item.get("url", ""))
            try:
                payload = item.model_dump() if isinstance(item, BulkJobItem) else dict(item)
                payload.update(priority=priority, max_retries=attempts)
                request = JobRequest(**payload)
            except ValidationError as exc:
                errors.append(BulkItemError(index=index, url=raw_url, error=_validation_message(exc)))
                continue

            delay_until = None
            if brand_delay:
                delay = calculate_brand_delay(self._registry.get(request.brand), self._rng)
                delay_until = now + timedelta(seconds=delay)

            job = ScrapeJob(
                url=request.url,
                brand=request.brand,
                priority=request.priority,
                max_attempts=request.max_retries,
                metadata=request.metadata,
                delay_until=delay_until,
            )
            try:
                job_ids.append(self._queue.enqueue(job))
            except JobQueueError as exc:
                errors.append(BulkItemError(index=index, url=raw_url, error=str(exc)))

        log_event(
            logger,
            logging.INFO,
            "bulk_jobs_submitted",
            enqueued=len(job_ids),
            errors=len(errors),
        )
        return BulkEnqueueResult(job_ids=job_ids, errors=errors)

    def schedule_brand_catalog(
        self,
        brand: str,
        urls: Iterable[str],
        priority: int = 10,
    ) -> BulkEnqueueResult:
        """
        Enqueue a brand's product URLs, each held back by the brand's delay.
        """

        try:
            request = CatalogRequest(brand=brand, urls=list(urls), priority=priority)
        except ValidationError as exc:
            raise JobValidationError(_validation_message(exc)) from exc

        items = [
            {"url": url, "brand": request.brand, "metadata": {"source": "catalog"}}
            for url in request.urls
        ]
        result = self.add_bulk_jobs(items, priority=request.priority, brand_delay=True)
        log_event(
            logger,
            logging.INFO,
            "brand_catalog_scheduled",
            brand=request.brand,
            urls=len(request.urls),
            enqueued=result.enqueued,
        )
        return result

    # ------------------------------------------------------------------
    # Inspection and admin
    # ------------------------------------------------------------------

    def get_queue_stats(self) -> QueueStats:
        return self._queue.stats()

    def get_job(self, job_id: str) -> JobSummary | None:
        job = self._queue.get(job_id)
        return JobSummary.from_job(job) if job is not None else None

    def get_jobs_by_status(self, status: str, limit: int = 10) -> list[JobSummary]:
        return [JobSummary.from_job(job) for job in self._queue.get_by_status(status, limit=limit)]

    def retry_failed_jobs(self, limit: int = 100) -> int:
        retried = self._queue.retry_failed(limit)
        log_event(logger, logging.INFO, "failed_jobs_retried", retried=retried)
        return retried

    def remove_job(self, job_id: str) -> bool:
        return self._queue.remove(job_id)

    def clear_jobs(self, status: str = "completed") -> int:
        return self._queue.clean(status)

    def supported_brands(self) -> list[str]:
        return self._registry.supported_brands()

    def health_check(self) -> HealthReport:
        thresholds = self._settings.health
        issues: list[str] = []

        queue_stats: QueueStats | None = None
        queue_healthy = self._queue.ping()
        if not queue_healthy:
            issues.append("Job store is unreachable")
        else:
            queue_stats = self._queue.stats()
            if queue_stats.waiting > thresholds.queue_size_threshold:
                queue_healthy = False
                issues.append(
                    f"Queue backlog too large: {queue_stats.waiting} waiting "
                    f"(threshold {thresholds.queue_size_threshold})"
                )

        worker_stats = self._workers.stats() if self._workers is not None else None
        worker_healthy = worker_stats is not None and worker_stats.is_running
        if not worker_healthy:
            issues.append("Worker pool is not running")
        if (
            worker_stats is not None
            and worker_stats.total >= thresholds.min_samples
            and worker_stats.failure_rate > thresholds.failure_rate_threshold
        ):
            worker_healthy = False
            issues.append(
                f"Worker failure rate {worker_stats.failure_rate:.1%} exceeds "
                f"{thresholds.failure_rate_threshold:.1%}"
            )

        report = HealthReport(
            healthy=queue_healthy and worker_healthy,
            queue_healthy=queue_healthy,
            worker_healthy=worker_healthy,
            issues=issues,
            queue=queue_stats,
            workers=worker_stats,
        )
        if not report.healthy:
            log_event(logger, logging.WARNING, "crawler_unhealthy", issues=issues)
        return report

    def _max_retries(self, max_retries: int | None) -> int:
        return self._settings.queue.default_max_attempts if max_retries is None else max_retries
