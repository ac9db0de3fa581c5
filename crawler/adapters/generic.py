"""
Fallback adapter for retailers without a dedicated adapter.
"""

from __future__ import annotations

import functools
from dataclasses import replace
from urllib.parse import urlparse

from crawler.adapters.base import (
    AdapterConfig,
    AdapterFeatures,
    BrandAdapter,
    PageHook,
    SelectorConfig,
    settle_delay,
    trigger_lazy_images,
    wait_for_selector,
)
from crawler.domain.product import ProductCandidate
from crawler.extraction.parsing import brand_from_domain
from crawler.extraction.snapshot import PageSnapshot

UNKNOWN_BRAND = "Unknown"
UNKNOWN_CATEGORY = "Unknown"

GENERIC_TAGS = ("generic-extraction", "fashion")

# Checked in order; the first keyword found in the URL path wins.
URL_CATEGORY_KEYWORDS = (
    ("tshirt", "T-Shirts"),
    ("t-shirt", "T-Shirts"),
    ("sneaker", "Sneakers"),
    ("shirt", "Shirts"),
    ("dress", "Dresses"),
    ("jean", "Jeans"),
    ("trouser", "Pants"),
    ("pant", "Pants"),
    ("shoe", "Shoes"),
    ("boot", "Boots"),
    ("jacket", "Jackets"),
    ("coat", "Coats"),
    ("skirt", "Skirts"),
    ("short", "Shorts"),
    ("bag", "Bags"),
    ("accessor", "Accessories"),
)

GENERIC_CONFIG = AdapterConfig(
    name=UNKNOWN_BRAND,
    base_url="",
    selectors=SelectorConfig(
        product_name=(
            'h1, [class*="product"][class*="name"], .product-title, '
            '[class*="title"], [class*="name"]'
        ),
        price=(
            '[class*="price"]:not([class*="old"]):not([class*="original"]), '
            '.price, .amount, [class*="current-price"]'
        ),
        sale_price=(
            '[class*="old-price"], [class*="original-price"], [class*="was-price"], '
            ".old-price, .original-price"
        ),
        description='[class*="description"], .description, .product-description, [class*="detail"]',
        images=(
            'img[src*="product"], img[alt*="product"], .product-image img, '
            '[class*="gallery"] img, [class*="media"] img'
        ),
        colors='[class*="color"] button, [class*="color"] .swatch, [class*="color-option"]',
        sizes='[class*="size"] button, [class*="size"] .option, [class*="size-option"]',
        availability='[class*="availability"], [class*="stock"], .in-stock, .out-of-stock',
        sku='[class*="sku"], [class*="product-id"], .product-code, .item-number',
        breadcrumbs='.breadcrumb a, [class*="breadcrumb"] a',
    ),
    features=AdapterFeatures(
        has_ajax_loading=False,
        requires_scrolling=False,
        has_lazy_images=True,
        uses_json_ld=True,
        has_size_chart=False,
    ),
    aliases=("generic",),
)


class GenericAdapter(BrandAdapter):
    """
    Uses broad selectors and heuristics; trusts the brand found on the page.
    """

    is_generic = True

    def __init__(self, config: AdapterConfig = GENERIC_CONFIG) -> None:
        super().__init__(config)

    @property
    def slug(self) -> str:
        return "generic"

    def pre_extract_hooks(self) -> list[PageHook]:
        return [
            functools.partial(
                wait_for_selector,
                selector='h1, [class*="price"], .price, .amount',
                timeout_seconds=10.0,
            ),
            functools.partial(settle_delay, seconds=2.0),
            trigger_lazy_images,
        ]

    def enrich(self, candidate: ProductCandidate, snapshot: PageSnapshot) -> ProductCandidate:
        updates: dict[str, object] = {}
        if not candidate.category or candidate.category == UNKNOWN_CATEGORY:
            guessed = guess_category_from_url(snapshot.url)
            if guessed is not None:
                updates["category"] = guessed
        if not candidate.tags:
            updates["tags"] = list(GENERIC_TAGS)
        return replace(candidate, **updates) if updates else candidate

    def resolve_brand(self, candidate: ProductCandidate, url: str) -> str:
        if candidate.brand and candidate.brand.strip():
            return candidate.brand.strip()
        return brand_from_domain(url) or UNKNOWN_BRAND


def guess_category_from_url(url: str) -> str | None:
    path = urlparse(url).path.lower()
    for keyword, category in URL_CATEGORY_KEYWORDS:
        if keyword in path:
            return category
    return None
