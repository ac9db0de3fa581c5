"""
Crawler configuration models.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36 Edg/123.0.0.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15",
)


@dataclass(frozen=True)
class QueueSettings:
    """
    Retry, stall and retention policy for the job queue.
    """

    default_max_attempts: int = 3
    backoff_base_seconds: float = 5.0
    backoff_max_seconds: float = 300.0
    backoff_jitter_seconds: float = 2.0
    heartbeat_timeout_seconds: float = 30.0
    max_stalled_count: int = 1
    stalled_check_interval_seconds: float = 30.0
    keep_completed: int = 50
    keep_failed: int = 20


@dataclass(frozen=True)
class RateLimitSettings:
    min_delay_seconds: float = 3.0
    max_delay_seconds: float = 8.0
    max_requests_per_window: int = 100
    window_seconds: float = 3600.0


@dataclass(frozen=True)
class BrowserSettings:
    """
    Browser launch, navigation and session lifetime settings.
    """

    headless: bool = True
    navigation_timeout_seconds: float = 30.0
    navigation_retries: int = 3
    navigation_backoff_seconds: float = 2.0
    wait_until: str = "networkidle"
    simulate_human_behavior: bool = True
    settle_min_seconds: float = 2.0
    settle_max_seconds: float = 5.0
    session_idle_seconds: float = 1800.0
    user_agents: tuple[str, ...] = DEFAULT_USER_AGENTS


@dataclass(frozen=True)
class WorkerSettings:
    concurrency: int = 2
    poll_interval_seconds: float = 1.0
    job_timeout_seconds: float = 180.0
    shutdown_timeout_seconds: float = 30.0
    # Longer rate-limit waits put the job back instead of holding a worker.
    max_rate_wait_seconds: float = 30.0


@dataclass(frozen=True)
class HealthSettings:
    queue_size_threshold: int = 1000
    failure_rate_threshold: float = 0.1
    min_samples: int = 10


@dataclass(frozen=True)
class CrawlerSettings:
    """
    Top-level runtime settings for the crawler process.
    """

    store_backend: str = "memory"
    database_url: str | None = None
    adapters_path: str | None = None
    queue: QueueSettings = field(default_factory=QueueSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    browser: BrowserSettings = field(default_factory=BrowserSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
