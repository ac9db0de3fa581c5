"""
Config helpers for the crawler.
"""

from crawler.config.loader import get_crawler_settings, load_adapter_configs
from crawler.config.models import (
    BrowserSettings,
    CrawlerSettings,
    HealthSettings,
    QueueSettings,
    RateLimitSettings,
    WorkerSettings,
)

__all__ = [
    "BrowserSettings",
    "CrawlerSettings",
    "HealthSettings",
    "QueueSettings",
    "RateLimitSettings",
    "WorkerSettings",
    "get_crawler_settings",
    "load_adapter_configs",
]
