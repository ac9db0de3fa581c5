"""
Environment + JSON config loader for the crawler.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path

from db.config import load_env_files

from crawler.adapters.base import AdapterConfig, AdapterFeatures, SelectorConfig
from crawler.config.models import (
    BrowserSettings,
    CrawlerSettings,
    HealthSettings,
    QueueSettings,
    RateLimitSettings,
    WorkerSettings,
)


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_config_path(raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (_project_root() / candidate).resolve()


@lru_cache(maxsize=1)
def get_crawler_settings() -> CrawlerSettings:
    """
    Return cached crawler settings from environment variables.
    """

    load_env_files()

    queue = QueueSettings(
        default_max_attempts=max(1, _get_int_env("CRAWLER_MAX_ATTEMPTS", 3)),
        backoff_base_seconds=max(0.0, _get_float_env("CRAWLER_BACKOFF_BASE_SECONDS", 5.0)),
        backoff_max_seconds=max(0.0, _get_float_env("CRAWLER_BACKOFF_MAX_SECONDS", 300.0)),
        backoff_jitter_seconds=max(0.0, _get_float_env("CRAWLER_BACKOFF_JITTER_SECONDS", 2.0)),
        heartbeat_timeout_seconds=max(
            1.0,
            _get_float_env("CRAWLER_HEARTBEAT_TIMEOUT_SECONDS", 30.0),
        ),
        max_stalled_count=max(0, _get_int_env("CRAWLER_MAX_STALLED_COUNT", 1)),
        stalled_check_interval_seconds=max(
            1.0,
            _get_float_env("CRAWLER_STALLED_CHECK_INTERVAL_SECONDS", 30.0),
        ),
        keep_completed=max(0, _get_int_env("CRAWLER_KEEP_COMPLETED", 50)),
        keep_failed=max(0, _get_int_env("CRAWLER_KEEP_FAILED", 20)),
    )

    min_delay = max(0.0, _get_float_env("CRAWLER_RATE_MIN_DELAY_SECONDS", 3.0))
    rate_limit = RateLimitSettings(
        min_delay_seconds=min_delay,
        max_delay_seconds=max(min_delay, _get_float_env("CRAWLER_RATE_MAX_DELAY_SECONDS", 8.0)),
        max_requests_per_window=max(1, _get_int_env("CRAWLER_RATE_MAX_REQUESTS_PER_HOUR", 100)),
        window_seconds=max(1.0, _get_float_env("CRAWLER_RATE_WINDOW_SECONDS", 3600.0)),
    )

    settle_min = max(0.0, _get_float_env("CRAWLER_SETTLE_MIN_SECONDS", 2.0))
    browser = BrowserSettings(
        headless=_get_bool_env("CRAWLER_HEADLESS", True),
        navigation_timeout_seconds=max(
            1.0,
            _get_float_env("CRAWLER_NAVIGATION_TIMEOUT_SECONDS", 30.0),
        ),
        navigation_retries=max(1, _get_int_env("CRAWLER_NAVIGATION_RETRIES", 3)),
        navigation_backoff_seconds=max(
            0.0,
            _get_float_env("CRAWLER_NAVIGATION_BACKOFF_SECONDS", 2.0),
        ),
        wait_until=_get_str_env("CRAWLER_WAIT_UNTIL", "networkidle"),
        simulate_human_behavior=_get_bool_env("CRAWLER_SIMULATE_HUMAN", True),
        settle_min_seconds=settle_min,
        settle_max_seconds=max(settle_min, _get_float_env("CRAWLER_SETTLE_MAX_SECONDS", 5.0)),
        session_idle_seconds=max(60.0, _get_float_env("CRAWLER_SESSION_IDLE_SECONDS", 1800.0)),
    )

    worker = WorkerSettings(
        concurrency=max(1, _get_int_env("CRAWLER_CONCURRENCY", 2)),
        poll_interval_seconds=max(0.05, _get_float_env("CRAWLER_POLL_INTERVAL_SECONDS", 1.0)),
        job_timeout_seconds=max(1.0, _get_float_env("CRAWLER_JOB_TIMEOUT_SECONDS", 180.0)),
        shutdown_timeout_seconds=max(
            0.0,
            _get_float_env("CRAWLER_SHUTDOWN_TIMEOUT_SECONDS", 30.0),
        ),
        max_rate_wait_seconds=max(0.0, _get_float_env("CRAWLER_MAX_RATE_WAIT_SECONDS", 30.0)),
    )

    health = HealthSettings(
        queue_size_threshold=max(1, _get_int_env("CRAWLER_HEALTH_QUEUE_SIZE_THRESHOLD", 1000)),
        failure_rate_threshold=min(
            1.0,
            max(0.0, _get_float_env("CRAWLER_HEALTH_FAILURE_RATE_THRESHOLD", 0.1)),
        ),
        min_samples=max(1, _get_int_env("CRAWLER_HEALTH_MIN_SAMPLES", 10)),
    )

    adapters_path = os.getenv("CRAWLER_ADAPTERS_PATH")
    return CrawlerSettings(
        store_backend=_get_str_env("CRAWLER_STORE_BACKEND", "memory").lower(),
        database_url=os.getenv("CRAWLER_DATABASE_URL") or os.getenv("DATABASE_URL") or None,
        adapters_path=str(_resolve_config_path(adapters_path)) if adapters_path else None,
        queue=queue,
        rate_limit=rate_limit,
        browser=browser,
        worker=worker,
        health=health,
    )


def load_adapter_configs(*, config_path: str) -> list[AdapterConfig]:
    """
    Load declarative adapter definitions from a JSON file.
    """

    path = _resolve_config_path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Adapter config file not found: {path}")

    raw_data = json.loads(path.read_text(encoding="utf-8"))
    adapters = raw_data.get("adapters", [])
    if not isinstance(adapters, list):
        raise ValueError("Invalid adapter config: 'adapters' must be a list.")

    parsed: list[AdapterConfig] = []
    for entry in adapters:
        if not isinstance(entry, dict):
            continue

        name = str(entry.get("name", "")).strip()
        base_url = str(entry.get("base_url", "")).strip()
        selectors = entry.get("selectors", {})
        if not name or not base_url or not isinstance(selectors, dict):
            continue

        product_name = _optional_str(selectors.get("product_name"))
        price = _optional_str(selectors.get("price"))
        if product_name is None or price is None:
            continue

        features = entry.get("features", {})
        if not isinstance(features, dict):
            features = {}

        parsed.append(
            AdapterConfig(
                name=name,
                base_url=base_url.rstrip("/"),
                selectors=SelectorConfig(
                    product_name=product_name,
                    price=price,
                    sale_price=_optional_str(selectors.get("sale_price")),
                    description=_optional_str(selectors.get("description")),
                    images=_optional_str(selectors.get("images")) or "img",
                    colors=_optional_str(selectors.get("colors")),
                    sizes=_optional_str(selectors.get("sizes")),
                    availability=_optional_str(selectors.get("availability")),
                    sku=_optional_str(selectors.get("sku")),
                    breadcrumbs=_optional_str(selectors.get("breadcrumbs")),
                ),
                features=AdapterFeatures(
                    has_ajax_loading=_optional_bool(features.get("has_ajax_loading"), False),
                    requires_scrolling=_optional_bool(features.get("requires_scrolling"), False),
                    has_lazy_images=_optional_bool(features.get("has_lazy_images"), False),
                    uses_json_ld=_optional_bool(features.get("uses_json_ld"), True),
                    has_size_chart=_optional_bool(features.get("has_size_chart"), False),
                ),
                aliases=_str_tuple(entry.get("aliases")),
                id_patterns=_str_tuple(entry.get("id_patterns")),
                wait_selectors=_str_tuple(entry.get("wait_selectors")),
                state_globals=_str_tuple(entry.get("state_globals")),
                state_path=_optional_str(entry.get("state_path")),
                queue_delay_seconds=_delay_or_default(entry.get("queue_delay_seconds")),
                default_tags=_str_tuple(entry.get("default_tags")),
            )
        )

    return parsed


def _str_tuple(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else ()
    if not isinstance(value, list):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _optional_float(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default


def _delay_or_default(value: object, default: float = 2.0) -> float:
    delay = _optional_float(value)
    return default if delay is None else max(0.0, delay)
