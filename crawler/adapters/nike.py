"""
Nike adapter: Next.js storefront.
"""

from __future__ import annotations

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
    all_texts,
    clean_text,
    dig,
    first_text,
    gender_from_text,
    keyword_tags,
    parse_price,
)
from crawler.extraction.snapshot import PageSnapshot

NIKE_CONFIG = AdapterConfig(
    name="Nike",
    base_url="https://www.nike.com",
    selectors=SelectorConfig(
        product_name='h1[data-automation-id="product-title"], h1.headline-1',
        price='[data-automation-id="product-price"], .current-price, .product-price',
        sale_price='[data-automation-id="product-price-reduced"], .sale-price, .was-price',
        description='[data-automation-id="product-description"], .description-text',
        images='.product-image img, .media-wrapper img, [data-automation-id="product-image"]',
        colors='.color-chip, [data-automation-id="color-picker"] button',
        sizes='.size-picker button, [data-automation-id="size-picker"] button',
        availability='.availability, [data-automation-id="availability"]',
        sku='[data-automation-id="product-style"], .product-code',
        breadcrumbs=".breadcrumbs a, .breadcrumb a",
    ),
    features=AdapterFeatures(
        has_ajax_loading=True,
        requires_scrolling=True,
        has_lazy_images=True,
        uses_json_ld=True,
        has_size_chart=True,
    ),
    aliases=("nike",),
    id_patterns=(r"/t/[^/]+/([A-Z0-9-]+)", r"/([A-Z0-9]{6,12})(?:/|$)"),
    wait_selectors=('[data-automation-id="product-title"]', '[data-automation-id="product-price"]'),
    state_globals=("__NEXT_DATA__", "initialState", "product"),
    queue_delay_seconds=4.0,
)

GENDER_SELECTORS = '.gender, [data-automation-id="gender"], .product-gender'
TAG_SELECTORS = '[data-automation-id="product-tags"] span, .product-tags .tag, .keywords'


class NikeAdapter(BrandAdapter):
    color_attributes = ("aria-label", "data-color-name", "title")
    description_fallbacks = (".pi-pdpmainbody .pi-description", ".description-content")

    def __init__(self) -> None:
        super().__init__(NIKE_CONFIG)

    def state_parser(self) -> StateParser | None:
        return self.parse_state

    def parse_state(self, snapshot: PageSnapshot) -> ProductCandidate | None:
        for name in self.config.state_globals:
            data = snapshot.global_value(name)
            product = dig(data, "props", "pageProps", "initialState", "product")
            if product is None and isinstance(data, dict):
                product = data.get("product") if isinstance(data.get("product"), dict) else data
            candidate = _candidate_from_state(product, base_url=snapshot.url)
            if candidate is not None:
                return candidate
        return None

    def dom_details(self, soup: BeautifulSoup) -> dict[str, Any]:
        gender = gender_from_text(first_text(soup, GENDER_SELECTORS))
        if gender is None:
            breadcrumbs = " ".join(all_texts(soup, ".breadcrumbs, .breadcrumb"))
            gender = gender_from_text(breadcrumbs)

        tags = all_texts(soup, TAG_SELECTORS)
        keywords = soup.find("meta", attrs={"name": "keywords"})
        if keywords is not None:
            tags.extend(keyword_tags(keywords.get("content")) or [])
        return {"gender": gender, "tags": list(dict.fromkeys(tags)) or None}


def _candidate_from_state(product: Any, *, base_url: str) -> ProductCandidate | None:
    if not isinstance(product, dict):
        return None
    name = clean_text(product.get("title") or product.get("displayName") or product.get("name"))
    if not name:
        return None

    return ProductCandidate(
        name=name,
        description=clean_text(product.get("description") or product.get("shortDescription")) or None,
        base_price=parse_price(product.get("currentPrice") or dig(product, "price", "current")),
        sale_price=parse_price(product.get("msrp") or dig(product, "price", "full")),
        currency=product.get("currency") if isinstance(product.get("currency"), str) else None,
        images=_images(product.get("images") or product.get("media"), base_url=base_url),
        variants=_variants(product.get("skus") or product.get("variants")),
        category=product.get("productType") or product.get("category"),
        subcategory=product.get("subType") or product.get("subcategory"),
        gender=product.get("gender") if isinstance(product.get("gender"), str) else None,
        season=product.get("season") if isinstance(product.get("season"), str) else None,
        tags=keyword_tags(product.get("keywords")),
        external_id=product.get("styleColor") or product.get("styleCode"),
    )


def _images(data: Any, *, base_url: str) -> list[ProductImage]:
    images: list[ProductImage] = []
    for item in data if isinstance(data, list) else []:
        if not isinstance(item, dict):
            continue
        raw = item.get("portrayalUrl") or item.get("url") or item.get("src") or item.get("imageUrl")
        url = absolute_url(raw, base_url)
        if url:
            images.append(ProductImage(url=url, alt=item.get("altText") or item.get("alt")))
    return images


def _variants(data: Any) -> list[ProductVariant]:
    variants: list[ProductVariant] = []
    for item in data if isinstance(data, list) else []:
        if not isinstance(item, dict):
            continue
        size = item.get("nikeSize") or item.get("size") or item.get("localizedSize")
        if not size:
            continue
        color = item.get("colorDescription") or item.get("color") or "Default"
        available = item.get("available") is not False
        level = item.get("level")
        stock = int(level) if isinstance(level, (int, float)) else int(available)
        sku = item.get("skuId") or item.get("sku") or item.get("id") or f"nike-{size}"
        variants.append(
            ProductVariant(
                color=str(color),
                size=str(size),
                sku=str(sku),
                available=available,
                stock_quantity=stock,
            )
        )
    return variants
