"""
Ordered extraction cascade with early return on the first usable candidate.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from crawler.domain.product import ProductCandidate
from crawler.errors import ExtractionError
from crawler.extraction.snapshot import PageSnapshot
from crawler.logging_utils import log_event

if TYPE_CHECKING:
    from crawler.adapters.base import BrandAdapter

logger = logging.getLogger(__name__)


class ExtractionPipeline:
    """
    Evaluates an adapter's strategies left to right.

    A strategy that raises is logged and treated as having found nothing, so
    one malformed source never hides the ones after it.
    """

    def extract(self, snapshot: PageSnapshot, adapter: "BrandAdapter") -> ProductCandidate:
        attempted: list[str] = []
        for strategy in adapter.extraction_strategies():
            attempted.append(strategy.name)
            try:
                candidate = strategy.extract(snapshot)
            except Exception as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "extraction_strategy_error",
                    adapter=adapter.config.name,
                    strategy=strategy.name,
                    url=snapshot.url,
                    error=str(exc),
                )
                continue

            if candidate is None or candidate.is_empty():
                continue

            log_event(
                logger,
                logging.INFO,
                "extraction_strategy_matched",
                adapter=adapter.config.name,
                strategy=strategy.name,
                url=snapshot.url,
            )
            candidate = replace(candidate, source=strategy.name)
            return adapter.enrich(candidate, snapshot)

        raise ExtractionError(
            f"No extraction strategy produced a product for {snapshot.url} "
            f"(tried: {', '.join(attempted) or 'none'})"
        )
