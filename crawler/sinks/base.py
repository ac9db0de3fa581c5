"""
Downstream delivery interface for crawl results.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from crawler.domain.jobs import FailureRecord, ScrapeJob
from crawler.domain.product import ScrapedProduct


class ProductSink(ABC):
    """
    Receives validated products and terminal failures.

    Delivery is at-least-once: a product may be delivered again when its job
    is retried after a crash between delivery and completion.
    """

    @abstractmethod
    async def deliver(self, job: ScrapeJob, product: ScrapedProduct) -> None:
        raise NotImplementedError

    @abstractmethod
    async def report_failure(self, record: FailureRecord) -> None:
        raise NotImplementedError
