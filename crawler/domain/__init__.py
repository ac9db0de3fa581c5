"""
Domain models for product crawling.
"""

from crawler.domain.jobs import (
    PRIORITY_URGENT,
    BulkEnqueueResult,
    BulkItemError,
    FailureRecord,
    JobProgress,
    JobStatus,
    QueueStats,
    ScrapeJob,
)
from crawler.domain.product import ProductCandidate, ProductImage, ProductVariant, ScrapedProduct

__all__ = [
    "PRIORITY_URGENT",
    "BulkEnqueueResult",
    "BulkItemError",
    "FailureRecord",
    "JobProgress",
    "JobStatus",
    "ProductCandidate",
    "ProductImage",
    "ProductVariant",
    "QueueStats",
    "ScrapeJob",
    "ScrapedProduct",
]
