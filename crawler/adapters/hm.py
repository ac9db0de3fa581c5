"""
H&M adapter.
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
from crawler.extraction.parsing import absolute_url, all_texts, clean_text, dig, parse_price, string_list
from crawler.extraction.snapshot import PageSnapshot

HM_CONFIG = AdapterConfig(
    name="H&M",
    base_url="https://www2.hm.com",
    selectors=SelectorConfig(
        product_name='h1.primary.product-item-headline, h1[data-testid="product-title"]',
        price='.price .price-value, .price__value, [data-testid="price-current"]',
        sale_price='.price .price-before, .price__previous, [data-testid="price-previous"]',
        description='.product-description-text, [data-testid="product-description"]',
        images=".product-detail-main-image-container img, .product-images img",
        colors=".color-picker .color-option, .product-colors button",
        sizes=".size-picker .size-option, .product-sizes button",
        availability='.availability-text, [data-testid="availability"]',
        sku="[data-productcode], [data-product-id]",
        breadcrumbs=".breadcrumb a, .breadcrumbs a",
    ),
    features=AdapterFeatures(
        has_ajax_loading=True,
        requires_scrolling=False,
        has_lazy_images=True,
        uses_json_ld=True,
        has_size_chart=True,
    ),
    aliases=("h&m", "hm", "handm"),
    id_patterns=(r"productpage\.(\d+)\.html", r"/(\d{10,})\.html"),
    state_globals=("productArticles", "productData", "__INITIAL_STATE__"),
    queue_delay_seconds=3.0,
)

MATERIAL_SELECTORS = '.product-details .material, .composition-list li, [data-testid="composition"]'
CARE_SELECTORS = '.care-instructions li, .product-care li, [data-testid="care-instructions"] li'


class HMAdapter(BrandAdapter):
    color_attributes = ("data-color", "title")
    description_fallbacks = (".product-description p", ".pdp-description-text")

    def __init__(self) -> None:
        super().__init__(HM_CONFIG)

    def state_parser(self) -> StateParser | None:
        return self.parse_state

    def parse_state(self, snapshot: PageSnapshot) -> ProductCandidate | None:
        for name in self.config.state_globals:
            candidate = _candidate_from_state(snapshot.global_value(name), base_url=snapshot.url)
            if candidate is not None:
                return candidate
        return _candidate_from_state(snapshot.embedded_value("productArticles"), base_url=snapshot.url)

    def dom_details(self, soup: BeautifulSoup) -> dict[str, Any]:
        return {
            "materials": all_texts(soup, MATERIAL_SELECTORS) or None,
            "care_instructions": all_texts(soup, CARE_SELECTORS) or None,
        }


def _candidate_from_state(data: Any, *, base_url: str) -> ProductCandidate | None:
    product = data[0] if isinstance(data, list) and data else data
    if not isinstance(product, dict):
        return None
    name = clean_text(product.get("name") or product.get("title"))
    if not name:
        return None

    price = product.get("price") if isinstance(product.get("price"), dict) else {}
    white_price = product.get("whitePrice") if isinstance(product.get("whitePrice"), dict) else {}
    materials: list[str] = []
    for composition in product.get("compositions") or []:
        materials.extend(string_list(dig(composition, "materials")) or [])

    return ProductCandidate(
        name=name,
        description=clean_text(product.get("description") or product.get("descriptiveLength")) or None,
        base_price=parse_price(price.get("value") or white_price.get("value")),
        sale_price=parse_price(
            dig(product, "redPrice", "value") or dig(product, "salePrice", "value")
        ),
        currency=price.get("currency") or white_price.get("currency"),
        images=_images(product.get("images") or product.get("galleryImages"), base_url=base_url),
        variants=_variants(product.get("variants") or product.get("articlesList")),
        category=product.get("categoryName") or product.get("category"),
        materials=materials or None,
        care_instructions=string_list(product.get("careInstructions")),
    )


def _images(data: Any, *, base_url: str) -> list[ProductImage]:
    images: list[ProductImage] = []
    for item in data if isinstance(data, list) else []:
        if not isinstance(item, dict):
            continue
        url = absolute_url(item.get("url") or item.get("src") or item.get("baseUrl"), base_url)
        if url:
            images.append(ProductImage(url=url, alt=item.get("alt") or item.get("altText")))
    return images


def _variants(data: Any) -> list[ProductVariant]:
    variants: list[ProductVariant] = []
    for article in data if isinstance(data, list) else []:
        if not isinstance(article, dict):
            continue
        color = article.get("color") or article.get("colorName") or "Unknown"
        sku = article.get("code") or article.get("articleCode") or article.get("id") or ""
        for size in article.get("sizes") or article.get("variantSizes") or []:
            if not isinstance(size, dict):
                continue
            label = size.get("name") or size.get("sizeName") or size.get("code")
            if not label:
                continue
            stock_level = dig(size, "stock", "stockLevel")
            stock = int(stock_level) if isinstance(stock_level, (int, float)) else 0
            variants.append(
                ProductVariant(
                    color=str(color),
                    size=str(label),
                    sku=f"{sku}-{label}" if sku else str(label),
                    available=stock > 0 or size.get("availability") == "available",
                    stock_quantity=stock,
                )
            )
    return variants
