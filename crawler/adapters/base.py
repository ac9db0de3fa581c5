"""
Adapter abstraction: static brand config, page-preparation hooks and the
ordered extraction strategies for one retailer.
"""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any

from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from crawler.domain.product import ProductCandidate, ProductVariant
from crawler.extraction.parsing import (
    build_size_variants,
    category_from_breadcrumbs,
    clean_text,
    detect_currency,
    extract_images,
    first_text,
    is_available,
    option_label,
    parse_price,
)
from crawler.extraction.snapshot import PageSnapshot
from crawler.extraction.strategies import (
    BRAND_STATE,
    DOM_SELECTORS,
    HEURISTICS,
    JSON_LD,
    MICRODATA,
    OPEN_GRAPH,
    ExtractionStrategy,
    extract_heuristics,
    extract_json_ld,
    extract_microdata,
    extract_open_graph,
)
from crawler.logging_utils import log_event

logger = logging.getLogger(__name__)

PageHook = Callable[[Any], Awaitable[None]]
StateParser = Callable[[PageSnapshot], ProductCandidate | None]

BASE_ID_PATTERNS = (
    r"/(\d+)\.html$",
    r"/p/([^/]+)",
    r"product/([^/?]+)",
)
OUT_OF_STOCK_MARKERS = ("out of stock", "sold out", "unavailable", "not available")

_LAZY_IMAGE_SCRIPT = """
() => {
    const images = document.querySelectorAll('img[data-src], img[loading="lazy"]');
    images.forEach((img) => img.scrollIntoView({ behavior: 'instant', block: 'center' }));
    return images.length;
}
"""


@dataclass(frozen=True)
class SelectorConfig:
    """
    CSS selector groups for DOM extraction; each may list alternatives.
    """

    product_name: str
    price: str
    images: str
    sale_price: str | None = None
    description: str | None = None
    colors: str | None = None
    sizes: str | None = None
    availability: str | None = None
    sku: str | None = None
    breadcrumbs: str | None = None


@dataclass(frozen=True)
class AdapterFeatures:
    has_ajax_loading: bool = False
    requires_scrolling: bool = False
    has_lazy_images: bool = False
    uses_json_ld: bool = True
    has_size_chart: bool = False


@dataclass(frozen=True)
class AdapterConfig:
    """
    Static per-brand configuration; immutable after construction.
    """

    name: str
    base_url: str
    selectors: SelectorConfig
    features: AdapterFeatures = field(default_factory=AdapterFeatures)
    aliases: tuple[str, ...] = ()
    id_patterns: tuple[str, ...] = ()
    wait_selectors: tuple[str, ...] = ()
    state_globals: tuple[str, ...] = ()
    state_path: str | None = None
    queue_delay_seconds: float = 2.0
    default_tags: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Page preparation hooks
# ---------------------------------------------------------------------------


async def settle_delay(page: Any, *, seconds: float) -> None:
    await page.wait_for_timeout(seconds * 1000)


async def wait_for_selector(page: Any, *, selector: str, timeout_seconds: float) -> None:
    """
    Wait for a selector, continuing silently past the bound.
    """

    try:
        await page.wait_for_selector(selector, timeout=timeout_seconds * 1000)
    except PlaywrightTimeoutError:
        log_event(
            logger,
            logging.INFO,
            "wait_for_selector_timeout",
            url=page.url,
            selector=selector,
            timeout_seconds=timeout_seconds,
        )


async def scroll_for_lazy_load(
    page: Any,
    *,
    steps: int = 5,
    step_pixels: int = 500,
    pause_seconds: float = 0.5,
) -> None:
    for _ in range(steps):
        await page.mouse.wheel(0, step_pixels)
        await page.wait_for_timeout(pause_seconds * 1000)


async def trigger_lazy_images(page: Any, *, settle_seconds: float = 2.0) -> None:
    await page.evaluate(_LAZY_IMAGE_SCRIPT)
    await page.wait_for_timeout(settle_seconds * 1000)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class BrandAdapter:
    """
    Config-driven adapter; brand subclasses override narrow extension points.

    Extension points: ``state_parser`` (in-page JSON state), ``dom_details``
    (extra DOM fields), ``extract_variants`` and ``enrich`` (fill gaps in the
    winning candidate).
    """

    is_generic = False
    color_attributes: tuple[str, ...] = ("aria-label", "data-color", "data-colour", "title")
    size_attributes: tuple[str, ...] = ("data-size",)
    description_fallbacks: tuple[str, ...] = ()

    def __init__(self, config: AdapterConfig) -> None:
        self._config = config

    @property
    def config(self) -> AdapterConfig:
        return self._config

    @property
    def brand_name(self) -> str:
        return self._config.name

    @property
    def slug(self) -> str:
        return "".join(char for char in self._config.name.lower() if char.isalnum()) or "brand"

    def pre_extract_hooks(self) -> list[PageHook]:
        features = self._config.features
        hooks: list[PageHook] = []
        if features.has_ajax_loading:
            hooks.append(functools.partial(settle_delay, seconds=2.0))
            hooks.append(
                functools.partial(
                    wait_for_selector,
                    selector=self._config.selectors.product_name,
                    timeout_seconds=10.0,
                )
            )
        if features.requires_scrolling:
            hooks.append(scroll_for_lazy_load)
        if features.has_lazy_images:
            hooks.append(trigger_lazy_images)
        for index, selector in enumerate(self._config.wait_selectors):
            hooks.append(
                functools.partial(
                    wait_for_selector,
                    selector=selector,
                    timeout_seconds=10.0 if index == 0 else 5.0,
                )
            )
        return hooks

    def extraction_strategies(self) -> list[ExtractionStrategy]:
        strategies: list[ExtractionStrategy] = []
        if self._config.features.uses_json_ld:
            strategies.append(ExtractionStrategy(JSON_LD, extract_json_ld))
        parser = self.state_parser()
        if parser is not None:
            strategies.append(ExtractionStrategy(BRAND_STATE, parser))
        strategies.extend(
            [
                ExtractionStrategy(MICRODATA, extract_microdata),
                ExtractionStrategy(OPEN_GRAPH, extract_open_graph),
                ExtractionStrategy(DOM_SELECTORS, self.extract_dom),
                ExtractionStrategy(HEURISTICS, extract_heuristics),
            ]
        )
        return strategies

    def state_parser(self) -> StateParser | None:
        return None

    # -- DOM selectors -----------------------------------------------------

    def extract_dom(self, snapshot: PageSnapshot) -> ProductCandidate | None:
        soup = snapshot.soup
        selectors = self._config.selectors

        name = first_text(soup, selectors.product_name)
        price_text = first_text(soup, selectors.price)
        base_price = parse_price(price_text)
        if not name or base_price is None:
            return None

        description = first_text(soup, selectors.description)
        for fallback in self.description_fallbacks:
            if description:
                break
            description = first_text(soup, fallback)

        candidate = ProductCandidate(
            name=name,
            description=description,
            base_price=base_price,
            sale_price=parse_price(first_text(soup, selectors.sale_price)),
            currency=detect_currency(price_text),
            images=extract_images(soup, selectors.images, base_url=snapshot.url),
            variants=self.extract_variants(soup),
            category=category_from_breadcrumbs(soup, selectors.breadcrumbs),
            external_id=self._sku_from_dom(soup),
        )
        details = self.dom_details(soup)
        return replace(candidate, **details) if details else candidate

    def dom_details(self, soup: BeautifulSoup) -> dict[str, Any]:
        return {}

    def extract_variants(self, soup: BeautifulSoup) -> list[ProductVariant]:
        sizes = self._size_options(soup)
        if not sizes:
            return []
        colors = self._color_options(soup)
        in_stock = self._in_stock(soup)
        return build_size_variants(
            color=colors[0][0] if colors else "Default",
            sizes=[(size, available and in_stock) for size, available in sizes],
            sku_prefix=self.slug,
        )

    def _color_options(self, soup: BeautifulSoup) -> list[tuple[str, bool]]:
        selector = self._config.selectors.colors
        if not selector:
            return []
        options: list[tuple[str, bool]] = []
        for node in soup.select(selector):
            label = option_label(node, self.color_attributes)
            if label:
                options.append((label, is_available(node)))
        return options

    def _size_options(self, soup: BeautifulSoup) -> list[tuple[str, bool]]:
        selector = self._config.selectors.sizes
        if not selector:
            return []
        options: list[tuple[str, bool]] = []
        for node in soup.select(selector):
            label = clean_text(node.get_text(" ", strip=True)) or option_label(node, self.size_attributes)
            if label:
                options.append((label, is_available(node)))
        return options

    def _in_stock(self, soup: BeautifulSoup) -> bool:
        text = first_text(soup, self._config.selectors.availability)
        if not text:
            return True
        lowered = text.lower()
        return not any(marker in lowered for marker in OUT_OF_STOCK_MARKERS)

    def _sku_from_dom(self, soup: BeautifulSoup) -> str | None:
        selector = self._config.selectors.sku
        if not selector:
            return None
        node = soup.select_one(selector)
        if node is None:
            return None
        for attribute in ("data-productcode", "data-product-id", "content"):
            value = node.get(attribute)
            if isinstance(value, str) and value.strip():
                return value.strip()
        tokens = re.findall(r"[A-Za-z0-9][A-Za-z0-9-]{3,}", node.get_text(" ", strip=True))
        digit_tokens = [token for token in tokens if any(char.isdigit() for char in token)]
        return digit_tokens[-1] if digit_tokens else None

    # -- Post-processing ---------------------------------------------------

    def enrich(self, candidate: ProductCandidate, snapshot: PageSnapshot) -> ProductCandidate:
        """
        Fill fields the winning strategy left empty; never overwrite values.
        """

        if not candidate.tags and self._config.default_tags:
            return replace(candidate, tags=list(self._config.default_tags))
        return candidate

    def external_id_from_url(self, url: str) -> str | None:
        for pattern in (*self._config.id_patterns, *BASE_ID_PATTERNS):
            match = re.search(pattern, url)
            if match:
                return match.group(1)
        return None

    def resolve_brand(self, candidate: ProductCandidate, url: str) -> str:
        return self._config.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(brand={self._config.name!r})"
