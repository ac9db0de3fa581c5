"""
tests/conftest.py

Shared fakes for crawler tests: controllable clocks, a scripted
Playwright-like page/context/browser so nothing launches a real browser,
and job-store fixtures covering both store backends.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from crawler.queue.stores import InMemoryJobStore, JobStore, SQLAlchemyJobStore
from db.base import Base
from db.models.scrape_job import ScrapeJobRecord
from db.session import create_session_factory


# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------


class FakeMonotonic:
    """Monotonic seconds clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeUTCClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture()
def utc_clock() -> FakeUTCClock:
    return FakeUTCClock()


# ---------------------------------------------------------------------------
# Browser fakes
# ---------------------------------------------------------------------------


@dataclass
class FakeResponse:
    status: int = 200


class FakeMouse:
    def __init__(self) -> None:
        self.wheel_calls: list[tuple[int, int]] = []
        self.moves: list[tuple[int, int]] = []

    async def wheel(self, delta_x: int, delta_y: int) -> None:
        self.wheel_calls.append((delta_x, delta_y))

    async def move(self, x: int, y: int) -> None:
        self.moves.append((x, y))


class FakePage:
    """
    Scripted page: ``goto_results`` is consumed one entry per navigation;
    an Exception entry is raised, anything else is returned as the response.
    """

    def __init__(
        self,
        *,
        url: str = "https://www.example.com/product/1",
        html: str = "<html><body></body></html>",
        globals_: dict[str, Any] | None = None,
        goto_results: list[Any] | None = None,
    ) -> None:
        self.url = url
        self.html = html
        self.globals = globals_ or {}
        self.goto_results = list(goto_results or [])
        self.goto_calls: list[dict[str, Any]] = []
        self.waits: list[float] = []
        self.selectors_waited: list[str] = []
        self.evaluated: list[Any] = []
        self.mouse = FakeMouse()
        self.viewport_size = {"width": 1366, "height": 768}
        self.closed = False

    async def goto(self, url: str, **kwargs: Any) -> Any:
        self.goto_calls.append({"url": url, **kwargs})
        result = self.goto_results.pop(0) if self.goto_results else FakeResponse()
        if isinstance(result, Exception):
            raise result
        return result

    async def content(self) -> str:
        return self.html

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append(arg)
        if arg is None:
            return None
        return self.globals.get(arg)

    async def wait_for_timeout(self, milliseconds: float) -> None:
        self.waits.append(milliseconds)

    async def wait_for_selector(self, selector: str, **kwargs: Any) -> None:
        self.selectors_waited.append(selector)

    async def close(self) -> None:
        self.closed = True


@dataclass
class FakeContext:
    options: dict[str, Any]
    pages: list[FakePage] = field(default_factory=list)
    init_scripts: list[str] = field(default_factory=list)
    page_factory: Any = None
    closed: bool = False

    async def new_page(self) -> FakePage:
        page = self.page_factory() if self.page_factory is not None else FakePage()
        self.pages.append(page)
        return page

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, page_factory: Any = None) -> None:
        self.contexts: list[FakeContext] = []
        self.page_factory = page_factory
        self.closed = False

    async def new_context(self, **options: Any) -> FakeContext:
        context = FakeContext(options=options, page_factory=self.page_factory)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True


class FakeEvasions:
    def __init__(self) -> None:
        self.applied: list[Any] = []

    async def apply_stealth_async(self, context: Any) -> None:
        self.applied.append(context)


@pytest.fixture()
def fake_browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture()
def fake_evasions() -> FakeEvasions:
    return FakeEvasions()


# ---------------------------------------------------------------------------
# Job stores
# ---------------------------------------------------------------------------


@pytest.fixture()
def sqlite_session_factory():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine, tables=[ScrapeJobRecord.__table__])
    yield create_session_factory(engine=engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sqlalchemy"])
def job_store(request: pytest.FixtureRequest) -> JobStore:
    """
    Every queue contract test runs against both store backends.
    """

    if request.param == "memory":
        return InMemoryJobStore()
    return SQLAlchemyJobStore(request.getfixturevalue("sqlite_session_factory"))
