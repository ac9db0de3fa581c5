"""
ASOS adapter.
"""

from __future__ import annotations

import re
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
    gender_from_text,
    keyword_tags,
    parse_price,
    string_list,
)
from crawler.extraction.snapshot import PageSnapshot

ASOS_CONFIG = AdapterConfig(
    name="ASOS",
    base_url="https://www.asos.com",
    selectors=SelectorConfig(
        product_name='h1[data-testid="product-name"], h1.product-hero-heading, h1.product-name',
        price='[data-testid="current-price"], .current-price, .product-price .price',
        sale_price='[data-testid="previous-price"], .previous-price, .product-price .was-price',
        description='[data-testid="product-description"], .product-description-text, .product-info',
        images='.product-image img, .media-gallery img, [data-testid="product-image"]',
        colors=".colour-picker button, .color-swatches button",
        sizes=".size-picker button, .size-list button",
        availability='.availability-msg, [data-testid="availability"]',
        sku='[data-testid="product-code"], .product-code',
        breadcrumbs=".breadcrumb a, .breadcrumbs a",
    ),
    features=AdapterFeatures(
        has_ajax_loading=True,
        requires_scrolling=True,
        has_lazy_images=True,
        uses_json_ld=True,
        has_size_chart=True,
    ),
    aliases=("asos",),
    id_patterns=(r"/prd/(\d+)", r"/(\d{7,10})(?:/|$)"),
    wait_selectors=('[data-testid="product-name"]', '[data-testid="current-price"]'),
    state_globals=("asos", "productData", "__NEXT_DATA__", "initialState"),
    queue_delay_seconds=2.0,
)

MATERIAL_SELECTORS = '.product-details .about-me, .composition, [data-testid="product-details"]'
CARE_SELECTORS = '.care-info, .product-care, [data-testid="care-instructions"]'
MATERIAL_PERCENT_REGEX = re.compile(r"\d+%\s*[A-Za-z]+")


class ASOSAdapter(BrandAdapter):
    color_attributes = ("aria-label", "data-colour", "title")
    description_fallbacks = (".product-description", ".product-details-content")

    def __init__(self) -> None:
        super().__init__(ASOS_CONFIG)

    def state_parser(self) -> StateParser | None:
        return self.parse_state

    def parse_state(self, snapshot: PageSnapshot) -> ProductCandidate | None:
        for name in self.config.state_globals:
            data = snapshot.global_value(name)
            product = (
                dig(data, "product")
                or dig(data, "props", "pageProps", "product")
                or dig(data, "pageProps", "initialState", "product")
                or data
            )
            candidate = _candidate_from_state(product, base_url=snapshot.url)
            if candidate is not None:
                return candidate
        return None

    def dom_details(self, soup: BeautifulSoup) -> dict[str, Any]:
        gender = gender_from_text(" ".join(all_texts(soup, ".breadcrumb, .breadcrumbs")))
        if gender is None:
            body = soup.body.get_text(" ", strip=True).lower() if soup.body else ""
            if "women's" in body or "womenswear" in body:
                gender = "Women"
            elif "men's" in body or "menswear" in body:
                gender = "Men"

        materials: list[str] = []
        for node in soup.select(MATERIAL_SELECTORS):
            materials.extend(MATERIAL_PERCENT_REGEX.findall(node.get_text(" ", strip=True)))

        return {
            "gender": gender,
            "materials": list(dict.fromkeys(materials)) or None,
            "care_instructions": all_texts(soup, CARE_SELECTORS) or None,
        }


def _candidate_from_state(product: Any, *, base_url: str) -> ProductCandidate | None:
    if not isinstance(product, dict):
        return None
    name = clean_text(product.get("name") or product.get("title") or product.get("displayName"))
    if not name:
        return None

    price = product.get("price")
    current = dig(price, "current") if isinstance(price, dict) else price
    return ProductCandidate(
        name=name,
        description=clean_text(
            product.get("description") or product.get("productDescription") or product.get("info")
        ) or None,
        base_price=parse_price(current or product.get("currentPrice")),
        sale_price=parse_price(
            dig(product, "price", "rrp") or product.get("originalPrice") or product.get("rrp")
        ),
        currency=dig(product, "price", "currency") or product.get("currency"),
        images=_images(
            product.get("images") or product.get("media") or product.get("imageUrls"),
            base_url=base_url,
        ),
        variants=_variants(product.get("variants") or product.get("colours") or product.get("skus")),
        category=product.get("categoryName") or product.get("category") or product.get("productType"),
        subcategory=product.get("subCategory") or product.get("productSubType"),
        gender=product.get("gender") or product.get("genderName"),
        materials=string_list(
            product.get("aboutMe") or product.get("careInfo") or product.get("composition")
        ),
        care_instructions=string_list(product.get("careInstructions") or product.get("care")),
        tags=keyword_tags(product.get("keywords")),
    )


def _images(data: Any, *, base_url: str) -> list[ProductImage]:
    if isinstance(data, dict):
        data = [value for value in data.values() if isinstance(value, str)]
    images: list[ProductImage] = []
    for item in data if isinstance(data, list) else []:
        if isinstance(item, str):
            raw, alt = item, None
        elif isinstance(item, dict):
            raw = item.get("url") or item.get("src") or item.get("imageUrl")
            alt = item.get("altText") or item.get("alt")
        else:
            continue
        url = absolute_url(raw, base_url)
        if url:
            images.append(ProductImage(url=url, alt=alt))
    return images


def _variants(data: Any) -> list[ProductVariant]:
    variants: list[ProductVariant] = []
    for item in data if isinstance(data, list) else []:
        if not isinstance(item, dict):
            continue
        color = str(item.get("colour") or item.get("color") or item.get("colourName") or "Default")
        variant_sku = item.get("id") or item.get("variantId") or item.get("sku")
        sizes = item.get("sizes") or item.get("variants")
        if isinstance(sizes, list):
            for size in sizes:
                if not isinstance(size, dict):
                    continue
                label = size.get("size") or size.get("name") or size.get("displayName") or size.get("value")
                if not label:
                    continue
                in_stock = size.get("isInStock") is not False and size.get("available") is not False
                sku = variant_sku or size.get("id") or f"asos-{label}"
                variants.append(
                    ProductVariant(
                        color=color,
                        size=str(label),
                        sku=str(sku),
                        available=in_stock,
                        stock_quantity=_stock(size.get("stockQuantity"), in_stock),
                    )
                )
        else:
            in_stock = item.get("isInStock") is not False and item.get("available") is not False
            variants.append(
                ProductVariant(
                    color=color,
                    size=str(item.get("size") or "One Size"),
                    sku=str(variant_sku or f"asos-{color}"),
                    available=in_stock,
                    stock_quantity=_stock(item.get("stockQuantity"), in_stock),
                )
            )
    return variants


def _stock(value: Any, in_stock: bool) -> int:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return 1 if in_stock else 0
