"""
Zara adapter: React storefront with preloaded JSON state.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from bs4 import BeautifulSoup

from crawler.adapters.base import (
    AdapterConfig,
    AdapterFeatures,
    BrandAdapter,
    SelectorConfig,
    StateParser,
)
from crawler.domain.product import ProductCandidate, ProductImage, ProductVariant
from crawler.extraction.parsing import (
    absolute_url,
    clean_text,
    first_text,
    parse_price,
    slugify,
    string_list,
)
from crawler.extraction.snapshot import PageSnapshot

ZARA_IMAGE_HOST = "https://static.zara.net"
ZARA_TAGS = ("zara", "fast-fashion", "trendy")

ZARA_CONFIG = AdapterConfig(
    name="Zara",
    base_url="https://www.zara.com",
    selectors=SelectorConfig(
        product_name='[data-testid="product-name"], .product-name, h1.product-detail-info__header-name',
        price=(
            '[data-testid="price-current"], .price-current, '
            ".product-detail-info__price .price-current, .money-amount__main"
        ),
        sale_price='[data-testid="price-old"], .price-old, .product-detail-info__price .price-old',
        description=(
            '[data-testid="product-description"], .product-detail-description, '
            ".product-detail-info__description"
        ),
        images='.media-image__image img, .product-media img, [data-testid="product-image"]',
        colors='[data-testid="product-color-selector"] button, .product-detail-color-selector__color',
        sizes='[data-testid="product-size-selector"] button, .product-detail-size-info__main-label',
        availability=(
            '[data-testid="product-availability"], .product-availability, '
            ".product-detail-availability"
        ),
        sku='[data-testid="product-id"], .product-reference',
        breadcrumbs=".breadcrumb-item, .layout-breadcrumb__item a",
    ),
    features=AdapterFeatures(
        has_ajax_loading=True,
        requires_scrolling=True,
        has_lazy_images=True,
        uses_json_ld=True,
        has_size_chart=True,
    ),
    aliases=("zara",),
    id_patterns=(r"p(\d+)\.html",),
    wait_selectors=(
        '[data-testid="price-current"], .price-current, .money-amount__main',
        ".media-image__image img, .product-media img",
    ),
    state_globals=("__PRELOADED_STATE__", "__INITIAL_STATE__"),
    queue_delay_seconds=5.0,
    default_tags=ZARA_TAGS,
)


class ZaraAdapter(BrandAdapter):
    def __init__(self) -> None:
        super().__init__(ZARA_CONFIG)

    def state_parser(self) -> StateParser | None:
        return self.parse_state

    def parse_state(self, snapshot: PageSnapshot) -> ProductCandidate | None:
        for name in self.config.state_globals:
            product = _locate_product(snapshot.global_value(name))
            if product is not None:
                return _candidate_from_state(product)
        return None

    def extract_variants(self, soup: BeautifulSoup) -> list[ProductVariant]:
        """
        Zara lists colors and sizes independently; expand them into a matrix.
        """

        colors = self._color_options(soup)
        sizes = self._size_options(soup)
        if not colors and not sizes:
            return []
        colors = colors or [("One Color", True)]
        sizes = sizes or [("One Size", True)]
        variants: list[ProductVariant] = []
        for color, color_available in colors:
            for size, size_available in sizes:
                available = color_available and size_available
                variants.append(
                    ProductVariant(
                        color=color,
                        size=size,
                        sku=slugify(f"{color}-{size}"),
                        available=available,
                        stock_quantity=1 if available else 0,
                    )
                )
        return variants

    def enrich(self, candidate: ProductCandidate, snapshot: PageSnapshot) -> ProductCandidate:
        updates: dict[str, Any] = {}
        if not candidate.variants:
            variants = self.extract_variants(snapshot.soup)
            if variants:
                updates["variants"] = variants
        if not candidate.external_id:
            reference = first_text(
                snapshot.soup,
                '[data-testid="product-reference"], .product-reference',
            )
            if reference:
                updates["external_id"] = reference
        enriched = replace(candidate, **updates) if updates else candidate
        return super().enrich(enriched, snapshot)


def _locate_product(data: Any) -> dict[str, Any] | None:
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("product"), dict):
        return data["product"]
    for container in ("catalog", "detail"):
        nested = data.get(container)
        if isinstance(nested, dict) and isinstance(nested.get("product"), dict):
            return nested["product"]
    products = data.get("products")
    if isinstance(products, list) and products and isinstance(products[0], dict):
        return products[0]
    return None


def _candidate_from_state(product: dict[str, Any]) -> ProductCandidate:
    external_id = product.get("id") or product.get("productId") or product.get("reference")
    return ProductCandidate(
        external_id=str(external_id) if external_id else None,
        name=clean_text(product.get("name") or product.get("title")) or None,
        description=clean_text(
            product.get("description") or product.get("detail") or product.get("shortDescription")
        ) or None,
        base_price=parse_price(product.get("price")),
        sale_price=parse_price(product.get("oldPrice") or product.get("originalPrice")),
        images=_images(product.get("images") or product.get("media") or product.get("photos")),
        variants=_variants(product.get("variants") or product.get("colors") or product.get("sizes")),
        category=_category(product),
        materials=string_list(product.get("composition") or product.get("materials")),
        care_instructions=string_list(product.get("care") or product.get("careInstructions")),
        tags=_tags(product),
        gender=product.get("gender") if isinstance(product.get("gender"), str) else None,
        season=product.get("season") if isinstance(product.get("season"), str) else None,
    )


def _images(data: Any) -> list[ProductImage]:
    if isinstance(data, dict):
        items = [data] if (data.get("url") or data.get("src")) else list(data.values())
    elif isinstance(data, list):
        items = data
    else:
        return []

    images: list[ProductImage] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        raw = item.get("url") or item.get("src") or item.get("path")
        url = absolute_url(raw, ZARA_IMAGE_HOST)
        if url:
            images.append(ProductImage(url=url, alt=item.get("alt") or item.get("description")))
    return images


def _variants(data: Any) -> list[ProductVariant]:
    if not isinstance(data, list):
        return []
    variants: list[ProductVariant] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        stock = item.get("stock", item.get("quantity"))
        stock_quantity = int(stock) if isinstance(stock, (int, float)) else None
        available = item.get("available") is not False and (
            stock_quantity is None or stock_quantity > 0
        )
        color = item.get("color") or item.get("colorName") or "Unknown"
        size = item.get("size") or item.get("sizeName") or "One Size"
        sku = item.get("sku") or item.get("id") or item.get("reference") or slugify(f"{color}-{size}")
        variants.append(
            ProductVariant(
                color=str(color),
                size=str(size),
                sku=str(sku),
                available=available,
                stock_quantity=stock_quantity if stock_quantity is not None else int(available),
            )
        )
    return variants


def _category(product: dict[str, Any]) -> str | None:
    category = product.get("category")
    if isinstance(category, list):
        category = category[-1] if category else None
    for value in (category, product.get("section"), product.get("family")):
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _tags(product: dict[str, Any]) -> list[str]:
    tags: list[str] = []
    raw_tags = product.get("tags")
    if isinstance(raw_tags, list):
        tags.extend(str(tag) for tag in raw_tags if tag)
    for key in ("style", "season", "gender"):
        value = product.get(key)
        if isinstance(value, str) and value:
            tags.append(value)
    tags.extend(ZARA_TAGS)
    return list(dict.fromkeys(tags))
