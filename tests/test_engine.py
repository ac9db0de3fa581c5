"""
tests/test_engine.py

Crawl engine end to end against scripted fake pages: navigation retries,
progress reporting, extraction outcomes and page cleanup.
"""

from __future__ import annotations

import asyncio
import json
import random

import pytest
from playwright.async_api import Error as PlaywrightError

from conftest import FakeBrowser, FakeEvasions, FakeMonotonic, FakePage, FakeResponse
from crawler.adapters import GenericAdapter, NikeAdapter
from crawler.config.models import BrowserSettings, RateLimitSettings
from crawler.domain.jobs import JobProgress
from crawler.engine import CrawlEngine
from crawler.errors import ExtractionError, NavigationError, ProductRejectedError, RejectReason
from crawler.rate_limiter import DomainRateLimiter
from crawler.stealth import StealthSessionManager

PRODUCT_URL = "https://shop.example.com/bags/weekender-123"

JSON_LD = {
    "@type": "Product",
    "name": "Canvas Weekender",
    "sku": "WK-123",
    "brand": {"name": "Acme"},
    "image": "/img/weekender.jpg",
    "offers": {"price": "89.00", "priceCurrency": "USD"},
}


def _html(payload: dict | None) -> str:
    script = f'<script type="application/ld+json">{json.dumps(payload)}</script>' if payload else ""
    return f"<html><head>{script}</head><body><p>page</p></body></html>"


def _build_engine(
    page: FakePage,
    monotonic: FakeMonotonic,
    *,
    simulate_human_behavior: bool = False,
) -> tuple[CrawlEngine, FakeBrowser]:
    settings = BrowserSettings(
        navigation_retries=3,
        navigation_backoff_seconds=2.0,
        simulate_human_behavior=simulate_human_behavior,
        settle_min_seconds=1.0,
        settle_max_seconds=2.0,
    )
    browser = FakeBrowser(page_factory=lambda: page)

    async def factory(_: BrowserSettings) -> FakeBrowser:
        return browser

    sessions = StealthSessionManager(
        settings=settings,
        rng=random.Random(1),
        clock=monotonic,
        browser_factory=factory,
        evasions=FakeEvasions(),
    )
    limiter = DomainRateLimiter(
        settings=RateLimitSettings(min_delay_seconds=0.0, max_delay_seconds=0.0),
        clock=monotonic,
        sleep=monotonic.sleep,
    )
    engine = CrawlEngine(settings=settings, rate_limiter=limiter, sessions=sessions, rng=random.Random(2))
    return engine, browser


def _run(engine: CrawlEngine, adapter, stages: list[str] | None = None):
    async def on_progress(stage: str) -> None:
        if stages is not None:
            stages.append(stage)

    async def run():
        await engine.start()
        try:
            return await engine.fetch_and_extract(PRODUCT_URL, adapter, on_progress)
        finally:
            await engine.shutdown()

    return asyncio.run(run())


class TestFetchAndExtract:
    def test_extracts_validated_product(self, monotonic: FakeMonotonic) -> None:
        page = FakePage(url=PRODUCT_URL, html=_html(JSON_LD))
        engine, _ = _build_engine(page, monotonic)
        stages: list[str] = []

        product = _run(engine, GenericAdapter(), stages)

        assert product.name == "Canvas Weekender"
        assert product.brand == "Acme"
        assert product.base_price == 8900
        assert product.external_id == "WK-123"
        assert product.category == "Bags"
        assert product.images[0].url == "https://shop.example.com/img/weekender.jpg"
        assert product.url == PRODUCT_URL
        assert stages == [JobProgress.NAVIGATING, JobProgress.EXTRACTING, JobProgress.VALIDATING]
        assert page.closed is True
        assert page.goto_calls[0]["wait_until"] == "networkidle"
        assert engine.stats()["pages_processed"] == 1

    def test_reads_adapter_state_globals_from_page(self, monotonic: FakeMonotonic) -> None:
        state = {"props": {"pageProps": {"initialState": {"product": {"title": "Pegasus", "currentPrice": 140}}}}}
        page = FakePage(url="https://www.nike.com/t/pegasus/FD2722-002", globals_={"__NEXT_DATA__": state})
        engine, _ = _build_engine(page, monotonic)

        async def run():
            await engine.start()
            return await engine.fetch_and_extract(page.url, NikeAdapter())

        product = asyncio.run(run())
        assert product.name == "Pegasus"
        assert product.external_id == "FD2722-002"
        assert "__NEXT_DATA__" in page.evaluated

    def test_retries_navigation_errors_and_retryable_statuses(self, monotonic: FakeMonotonic) -> None:
        page = FakePage(
            url=PRODUCT_URL,
            html=_html(JSON_LD),
            goto_results=[PlaywrightError("net::ERR_CONNECTION_RESET"), FakeResponse(503), FakeResponse(200)],
        )
        engine, _ = _build_engine(page, monotonic)

        product = _run(engine, GenericAdapter())

        assert product.name == "Canvas Weekender"
        assert len(page.goto_calls) == 3
        assert page.waits[:2] == [2000.0, 4000.0]

    def test_navigation_error_after_retries(self, monotonic: FakeMonotonic) -> None:
        page = FakePage(url=PRODUCT_URL, goto_results=[PlaywrightError("timeout")] * 3)
        engine, _ = _build_engine(page, monotonic)

        with pytest.raises(NavigationError, match="after 3 attempts"):
            _run(engine, GenericAdapter())
        assert page.closed is True

    def test_extraction_error_when_page_has_no_product(self, monotonic: FakeMonotonic) -> None:
        page = FakePage(url=PRODUCT_URL, html=_html(None))
        engine, _ = _build_engine(page, monotonic)

        with pytest.raises(ExtractionError):
            _run(engine, GenericAdapter())
        assert page.closed is True

    def test_rejects_product_without_price(self, monotonic: FakeMonotonic) -> None:
        page = FakePage(url=PRODUCT_URL, html=_html({"@type": "Product", "name": "No Price"}))
        engine, _ = _build_engine(page, monotonic)

        with pytest.raises(ProductRejectedError) as excinfo:
            _run(engine, GenericAdapter())
        assert excinfo.value.reason == RejectReason.INVALID_PRICE

    def test_human_behavior_scrolls_and_moves_within_viewport(self, monotonic: FakeMonotonic) -> None:
        page = FakePage(url=PRODUCT_URL, html=_html(JSON_LD))
        engine, _ = _build_engine(page, monotonic, simulate_human_behavior=True)

        _run(engine, GenericAdapter())

        assert 3 <= len(page.mouse.wheel_calls) <= 7
        assert all(0 == dx and 200 <= dy <= 500 for dx, dy in page.mouse.wheel_calls)
        [(x, y)] = page.mouse.moves
        assert 100 <= x <= 1266
        assert 100 <= y <= 668

    def test_session_reused_across_pages_of_one_domain(self, monotonic: FakeMonotonic) -> None:
        engine, browser = _build_engine(FakePage(url=PRODUCT_URL, html=_html(JSON_LD)), monotonic)

        async def run() -> None:
            await engine.start()
            await engine.fetch_and_extract(PRODUCT_URL, GenericAdapter())
            await engine.fetch_and_extract(PRODUCT_URL, GenericAdapter())

        asyncio.run(run())
        assert len(browser.contexts) == 1
        assert len(browser.contexts[0].pages) == 2
        assert engine.stats()["session_domains"] == ["shop.example.com"]
