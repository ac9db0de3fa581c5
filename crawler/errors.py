"""
Exception hierarchy for crawl, extraction and queue failures.
"""

from __future__ import annotations


class CrawlerError(Exception):
    """Base exception for crawler failures."""


class NavigationError(CrawlerError):
    """Raised when a page could not be loaded after all navigation retries."""


class ExtractionError(CrawlerError):
    """Raised when no extraction strategy produced a product candidate."""


class RejectReason:
    MISSING_NAME = "missing_name"
    INVALID_PRICE = "invalid_price"


class ProductRejectedError(CrawlerError):
    """
    Raised when an extracted candidate fails validation.

    Rejections are data-quality failures: retrying the page will not change
    its structure, so jobs failing with this error are not retried.
    """

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"Product rejected: {reason}")


class JobQueueError(CrawlerError):
    """Base exception for job queue failures."""


class JobValidationError(JobQueueError):
    """Raised when a job is rejected at enqueue time."""


class DuplicateJobError(JobQueueError):
    """Raised when a job id is already present in the queue."""


class AdapterNotFoundError(CrawlerError):
    """Raised when an adapter import path cannot be resolved."""


class RateLimitedError(CrawlerError):
    """
    Raised when a domain needs a longer wait than the caller is willing to spend.

    Nothing was attempted, so the job is put back with a delay and keeps its
    attempt budget.
    """

    def __init__(self, domain: str, wait_seconds: float) -> None:
        self.domain = domain
        self.wait_seconds = wait_seconds
        super().__init__(f"Rate limited on {domain} for {wait_seconds:.1f}s")
