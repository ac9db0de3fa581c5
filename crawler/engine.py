"""
Crawl engine: rate limiting, stealth session, navigation, extraction and validation.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

from playwright.async_api import Error as PlaywrightError

from crawler.adapters.base import BrandAdapter
from crawler.config.models import BrowserSettings
from crawler.domain.jobs import JobProgress
from crawler.domain.product import ScrapedProduct
from crawler.errors import NavigationError
from crawler.extraction.pipeline import ExtractionPipeline
from crawler.extraction.snapshot import capture_snapshot
from crawler.logging_utils import log_event
from crawler.normalization.product_normalizer import ProductNormalizer
from crawler.rate_limiter import DomainRateLimiter, domain_of
from crawler.stealth import StealthSessionManager

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], Awaitable[None]]

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
BLOCKED_STATUS_CODES = {403, 429}


class CrawlEngine:
    """
    Turns one URL plus an adapter into a validated ``ScrapedProduct``.

    Raises ``NavigationError`` when the page cannot be loaded,
    ``ExtractionError`` when no strategy yields a candidate and
    ``ProductRejectedError`` when the candidate fails validation.
    """

    def __init__(
        self,
        *,
        settings: BrowserSettings,
        rate_limiter: DomainRateLimiter,
        sessions: StealthSessionManager,
        pipeline: ExtractionPipeline | None = None,
        normalizer: ProductNormalizer | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._rate_limiter = rate_limiter
        self._sessions = sessions
        self._pipeline = pipeline or ExtractionPipeline()
        self._normalizer = normalizer or ProductNormalizer()
        self._rng = rng or random.Random()
        self._pages_processed = 0

    async def start(self) -> None:
        await self._sessions.start()

    async def shutdown(self) -> None:
        await self._sessions.close_all()

    async def fetch_and_extract(
        self,
        url: str,
        adapter: BrandAdapter,
        on_progress: ProgressCallback | None = None,
        *,
        max_rate_wait_seconds: float | None = None,
    ) -> ScrapedProduct:
        domain = domain_of(url)
        waited = await self._rate_limiter.acquire(domain, max_wait_seconds=max_rate_wait_seconds)
        if waited > 0:
            log_event(logger, logging.DEBUG, "rate_limit_waited", domain=domain, seconds=round(waited, 3))

        session = await self._sessions.get_or_create(domain)
        page = await session.new_page()
        try:
            await self._report(on_progress, JobProgress.NAVIGATING)
            await self._navigate(page, url)

            if self._settings.simulate_human_behavior:
                await self._simulate_human_behavior(page)
            for hook in adapter.pre_extract_hooks():
                await hook(page)

            await self._report(on_progress, JobProgress.EXTRACTING)
            snapshot = await capture_snapshot(page, global_names=adapter.config.state_globals)
            candidate = self._pipeline.extract(snapshot, adapter)

            await self._report(on_progress, JobProgress.VALIDATING)
            product = self._normalizer.validate(candidate, snapshot.url or url, adapter)
            self._pages_processed += 1
            log_event(
                logger,
                logging.INFO,
                "product_extracted",
                url=url,
                brand=product.brand,
                external_id=product.external_id,
                strategy=candidate.source,
            )
            return product
        finally:
            await self._close_page(page)

    def stats(self) -> dict[str, Any]:
        return {
            "active_sessions": self._sessions.session_count(),
            "session_domains": self._sessions.active_domains(),
            "tracked_domains": self._rate_limiter.tracked_domains(),
            "pages_processed": self._pages_processed,
        }

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def _navigate(self, page: Any, url: str) -> None:
        retries = self._settings.navigation_retries
        last_error: Exception | None = None

        for attempt in range(1, retries + 1):
            try:
                response = await page.goto(
                    url,
                    wait_until=self._settings.wait_until,
                    timeout=self._settings.navigation_timeout_seconds * 1000,
                )
                status = response.status if response is not None else None
                if status in BLOCKED_STATUS_CODES:
                    log_event(logger, logging.WARNING, "navigation_blocked", url=url, status=status)
                if status in RETRYABLE_STATUS_CODES:
                    raise NavigationError(f"Retryable status={status} for {url}")
                return
            except (PlaywrightError, NavigationError) as exc:
                last_error = exc
                log_event(
                    logger,
                    logging.WARNING,
                    "navigation_attempt_failed",
                    url=url,
                    attempt=attempt,
                    max_attempts=retries,
                    error=str(exc),
                )

            if attempt < retries:
                await page.wait_for_timeout(self._settings.navigation_backoff_seconds * attempt * 1000)

        raise NavigationError(f"Failed to load {url} after {retries} attempts: {last_error}")

    async def _simulate_human_behavior(self, page: Any) -> None:
        """
        Pause, scroll in uneven steps and move the mouse before extraction.
        """

        rng = self._rng
        await page.wait_for_timeout(rng.uniform(0.5, 2.5) * 1000)
        for _ in range(rng.randint(3, 7)):
            await page.mouse.wheel(0, rng.randint(200, 500))
            await page.wait_for_timeout(rng.uniform(0.5, 2.0) * 1000)

        viewport = page.viewport_size or {"width": 1280, "height": 720}
        await page.mouse.move(
            rng.randint(100, max(101, viewport["width"] - 100)),
            rng.randint(100, max(101, viewport["height"] - 100)),
        )
        await page.wait_for_timeout(
            rng.uniform(self._settings.settle_min_seconds, self._settings.settle_max_seconds) * 1000
        )

    @staticmethod
    async def _report(on_progress: ProgressCallback | None, stage: str) -> None:
        if on_progress is not None:
            await on_progress(stage)

    @staticmethod
    async def _close_page(page: Any) -> None:
        try:
            await page.close()
        except PlaywrightError as exc:
            log_event(logger, logging.DEBUG, "page_close_failed", error=str(exc))
