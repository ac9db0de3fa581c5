"""
Simple sinks for tests and command-line runs.
"""

from __future__ import annotations

import logging

from crawler.domain.jobs import FailureRecord, ScrapeJob
from crawler.domain.product import ScrapedProduct
from crawler.logging_utils import log_event
from crawler.sinks.base import ProductSink

logger = logging.getLogger(__name__)


class InMemoryProductSink(ProductSink):
    def __init__(self) -> None:
        self.products: list[ScrapedProduct] = []
        self.deliveries: list[tuple[str, ScrapedProduct]] = []
        self.failures: list[FailureRecord] = []

    async def deliver(self, job: ScrapeJob, product: ScrapedProduct) -> None:
        self.products.append(product)
        self.deliveries.append((job.id, product))

    async def report_failure(self, record: FailureRecord) -> None:
        self.failures.append(record)


class LoggingProductSink(ProductSink):
    """
    Writes one structured log event per delivered product or failure.
    """

    async def deliver(self, job: ScrapeJob, product: ScrapedProduct) -> None:
        log_event(
            logger,
            logging.INFO,
            "product_delivered",
            job_id=job.id,
            brand=product.brand,
            external_id=product.external_id,
            name=product.name,
            base_price=product.base_price,
            currency=product.currency,
            url=product.url,
        )

    async def report_failure(self, record: FailureRecord) -> None:
        log_event(
            logger,
            logging.WARNING,
            "product_failed",
            job_id=record.job_id,
            brand=record.brand,
            url=record.url,
            reason=record.reason,
            attempts=record.attempts,
        )
