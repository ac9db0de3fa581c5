"""
crawler/scheduler.py

APScheduler maintenance jobs for a running crawler process.

Schedule
--------
  recover_stalled:     every ``stalled_check_interval_seconds`` (default 30 s);
                       terminal stall failures go to the sink
  evict_idle_sessions: every 5 minutes, when a session manager is supplied

Lifecycle
---------
Call ``build_scheduler()`` once to get a configured ``AsyncIOScheduler``.
Start it inside the running event loop; shut it down before the loop exits.
``CrawlerService.start``/``stop`` do both.
"""

from __future__ import annotations

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from crawler.config.models import QueueSettings
from crawler.domain.jobs import FailureRecord, JobStatus
from crawler.logging_utils import log_event
from crawler.queue.job_queue import STALLED_ERROR, JobQueue
from crawler.sinks.base import ProductSink
from crawler.stealth import StealthSessionManager

logger = logging.getLogger(__name__)

SESSION_EVICTION_INTERVAL_SECONDS = 300


async def run_stall_recovery(queue: JobQueue, sink: ProductSink | None = None) -> list[str]:
    """
    Recover stalled jobs; jobs that stalled into a terminal failure are
    reported to ``sink`` like any other failed job.
    """

    recovered = await asyncio.to_thread(queue.recover_stalled_jobs)
    if recovered:
        log_event(logger, logging.INFO, "stall_recovery_run", recovered=len(recovered))
    if sink is not None:
        for job in recovered:
            if job.status != JobStatus.FAILED:
                continue
            await sink.report_failure(
                FailureRecord(
                    job_id=job.id,
                    url=job.url,
                    brand=job.brand,
                    reason=job.last_error or STALLED_ERROR,
                    attempts=job.attempt_count,
                )
            )
    return [job.id for job in recovered]


async def run_session_eviction(sessions: StealthSessionManager) -> list[str]:
    return await sessions.evict_idle()


def build_scheduler(
    *,
    queue: JobQueue,
    settings: QueueSettings,
    sessions: StealthSessionManager | None = None,
    sink: ProductSink | None = None,
) -> AsyncIOScheduler:
    """
    Return a configured but not yet started scheduler.
    """

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_stall_recovery,
        trigger="interval",
        seconds=settings.stalled_check_interval_seconds,
        args=[queue, sink],
        id="recover_stalled",
        name="Stalled job recovery",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if sessions is not None:
        scheduler.add_job(
            run_session_eviction,
            trigger="interval",
            seconds=SESSION_EVICTION_INTERVAL_SECONDS,
            args=[sessions],
            id="evict_idle_sessions",
            name="Idle browser session eviction",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    return scheduler
