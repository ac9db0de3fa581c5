"""
tests/test_config_loader.py

Environment-driven settings, adapter JSON loading and the maintenance scheduler.
"""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from pathlib import Path

import pytest

from crawler.config.loader import get_crawler_settings, load_adapter_configs
from conftest import FakeUTCClock
from crawler.config.models import BrowserSettings, QueueSettings
from crawler.domain.jobs import JobStatus, ScrapeJob
from crawler.queue import JobQueue
from crawler.queue.job_queue import STALLED_ERROR
from crawler.scheduler import build_scheduler, run_stall_recovery
from crawler.sinks import InMemoryProductSink
from crawler.stealth import StealthSessionManager

ENV_NAMES = (
    "CRAWLER_STORE_BACKEND",
    "CRAWLER_DATABASE_URL",
    "DATABASE_URL",
    "CRAWLER_ADAPTERS_PATH",
    "CRAWLER_MAX_ATTEMPTS",
    "CRAWLER_CONCURRENCY",
    "CRAWLER_HEADLESS",
    "CRAWLER_RATE_MIN_DELAY_SECONDS",
    "CRAWLER_RATE_MAX_DELAY_SECONDS",
    "CRAWLER_HEALTH_FAILURE_RATE_THRESHOLD",
    "CRAWLER_MAX_RATE_WAIT_SECONDS",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    get_crawler_settings.cache_clear()
    yield monkeypatch
    get_crawler_settings.cache_clear()


class TestCrawlerSettings:
    def test_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        settings = get_crawler_settings()

        assert settings.store_backend == "memory"
        assert settings.database_url is None
        assert settings.adapters_path is None
        assert settings.queue.default_max_attempts == 3
        assert settings.rate_limit.min_delay_seconds == 3.0
        assert settings.rate_limit.max_delay_seconds == 8.0
        assert settings.rate_limit.max_requests_per_window == 100
        assert settings.browser.headless is True
        assert settings.worker.concurrency == 2
        assert settings.worker.max_rate_wait_seconds == 30.0
        assert settings.health.queue_size_threshold == 1000

    def test_environment_overrides(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("CRAWLER_STORE_BACKEND", " SQLite ")
        clean_env.setenv("CRAWLER_DATABASE_URL", "sqlite:///crawler.db")
        clean_env.setenv("CRAWLER_MAX_ATTEMPTS", "5")
        clean_env.setenv("CRAWLER_CONCURRENCY", "4")
        clean_env.setenv("CRAWLER_HEADLESS", "off")
        clean_env.setenv("CRAWLER_MAX_RATE_WAIT_SECONDS", "90")

        settings = get_crawler_settings()

        assert settings.store_backend == "sqlite"
        assert settings.database_url == "sqlite:///crawler.db"
        assert settings.queue.default_max_attempts == 5
        assert settings.worker.concurrency == 4
        assert settings.browser.headless is False
        assert settings.worker.max_rate_wait_seconds == 90.0

    def test_invalid_and_out_of_range_values_are_clamped(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("CRAWLER_CONCURRENCY", "lots")
        clean_env.setenv("CRAWLER_MAX_ATTEMPTS", "0")
        clean_env.setenv("CRAWLER_RATE_MIN_DELAY_SECONDS", "6")
        clean_env.setenv("CRAWLER_RATE_MAX_DELAY_SECONDS", "2")
        clean_env.setenv("CRAWLER_HEALTH_FAILURE_RATE_THRESHOLD", "3")

        settings = get_crawler_settings()

        assert settings.worker.concurrency == 2
        assert settings.queue.default_max_attempts == 1
        assert settings.rate_limit.max_delay_seconds == 6.0
        assert settings.health.failure_rate_threshold == 1.0

    def test_relative_adapters_path_resolves_from_project_root(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("CRAWLER_ADAPTERS_PATH", "config/adapters.json")
        settings = get_crawler_settings()
        assert Path(settings.adapters_path).is_absolute()
        assert settings.adapters_path.endswith("adapters.json")

    def test_settings_are_cached(self, clean_env: pytest.MonkeyPatch) -> None:
        assert get_crawler_settings() is get_crawler_settings()


class TestAdapterConfigs:
    def _write(self, tmp_path: Path, adapters: object) -> str:
        path = tmp_path / "adapters.json"
        path.write_text(json.dumps({"adapters": adapters}), encoding="utf-8")
        return str(path)

    def test_parses_full_entry(self, tmp_path: Path) -> None:
        path = self._write(
            tmp_path,
            [
                {
                    "name": "Everlane",
                    "base_url": "https://www.everlane.com/",
                    "aliases": ["everlane-us"],
                    "id_patterns": ["/products/([a-z0-9-]+)"],
                    "queue_delay_seconds": 0,
                    "selectors": {"product_name": "h1", "price": ".price", "images": " "},
                    "features": {"requires_scrolling": "yes", "uses_json_ld": False},
                }
            ],
        )

        [config] = load_adapter_configs(config_path=path)

        assert config.name == "Everlane"
        assert config.base_url == "https://www.everlane.com"
        assert config.aliases == ("everlane-us",)
        assert config.queue_delay_seconds == 0.0
        assert config.selectors.images == "img"
        assert config.selectors.sale_price is None
        assert config.features.requires_scrolling is True
        assert config.features.uses_json_ld is False

    def test_skips_incomplete_entries(self, tmp_path: Path) -> None:
        path = self._write(
            tmp_path,
            [
                "not-an-object",
                {"name": "", "base_url": "https://a.example", "selectors": {"product_name": "h1", "price": ".p"}},
                {"name": "NoPrice", "base_url": "https://b.example", "selectors": {"product_name": "h1"}},
                {"name": "Ok", "base_url": "https://c.example", "selectors": {"product_name": "h1", "price": ".p"}},
            ],
        )

        configs = load_adapter_configs(config_path=path)

        assert [config.name for config in configs] == ["Ok"]
        assert configs[0].queue_delay_seconds == 2.0

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_adapter_configs(config_path=str(tmp_path / "missing.json"))

    def test_adapters_must_be_a_list(self, tmp_path: Path) -> None:
        path = self._write(tmp_path, {"name": "Everlane"})
        with pytest.raises(ValueError, match="must be a list"):
            load_adapter_configs(config_path=path)


class TestScheduler:
    def test_registers_maintenance_jobs(self) -> None:
        settings = QueueSettings(stalled_check_interval_seconds=15.0)
        scheduler = build_scheduler(
            queue=JobQueue(settings=settings),
            settings=settings,
            sessions=StealthSessionManager(settings=BrowserSettings()),
        )

        jobs = {job.id: job for job in scheduler.get_jobs()}

        assert set(jobs) == {"recover_stalled", "evict_idle_sessions"}
        assert jobs["recover_stalled"].trigger.interval == timedelta(seconds=15)
        assert jobs["evict_idle_sessions"].trigger.interval == timedelta(minutes=5)

    def test_session_eviction_is_optional(self) -> None:
        scheduler = build_scheduler(queue=JobQueue(), settings=QueueSettings())
        assert [job.id for job in scheduler.get_jobs()] == ["recover_stalled"]

    def test_stall_recovery_run_on_empty_queue(self) -> None:
        assert asyncio.run(run_stall_recovery(JobQueue())) == []

    def test_recover_stalled_job_receives_sink(self) -> None:
        queue = JobQueue()
        sink = InMemoryProductSink()
        scheduler = build_scheduler(queue=queue, settings=QueueSettings(), sink=sink)

        [job] = scheduler.get_jobs()
        assert tuple(job.args) == (queue, sink)

    def test_terminal_stall_is_reported_to_sink(self, utc_clock: FakeUTCClock) -> None:
        queue = JobQueue(settings=QueueSettings(max_stalled_count=0, heartbeat_timeout_seconds=30.0), clock=utc_clock)
        job_id = queue.enqueue(ScrapeJob(url="https://www.zara.com/us/en/p1.html", brand="zara", max_attempts=5))
        queue.dequeue("w-1")
        utc_clock.advance(31)
        sink = InMemoryProductSink()

        assert asyncio.run(run_stall_recovery(queue, sink)) == [job_id]

        assert queue.get(job_id).status == JobStatus.FAILED
        [failure] = sink.failures
        assert failure.job_id == job_id
        assert failure.brand == "zara"
        assert failure.reason == STALLED_ERROR
        assert failure.attempts == 1

    def test_requeued_stall_is_not_reported(self, utc_clock: FakeUTCClock) -> None:
        queue = JobQueue(settings=QueueSettings(max_stalled_count=1, heartbeat_timeout_seconds=30.0), clock=utc_clock)
        job_id = queue.enqueue(ScrapeJob(url="https://www.zara.com/us/en/p1.html", brand="zara", max_attempts=5))
        queue.dequeue("w-1")
        utc_clock.advance(31)
        sink = InMemoryProductSink()

        assert asyncio.run(run_stall_recovery(queue, sink)) == [job_id]

        assert queue.get(job_id).status == JobStatus.WAITING
        assert sink.failures == []
