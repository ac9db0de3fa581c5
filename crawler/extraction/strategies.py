"""
Brand-independent extraction strategies.

Every strategy is a pure function of a ``PageSnapshot`` returning a
``ProductCandidate`` or ``None`` when its source is absent from the page.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from bs4 import Tag

from crawler.domain.product import ProductCandidate, ProductImage
from crawler.extraction.parsing import (
    CURRENCY_PRICE_PATTERNS,
    absolute_url,
    brand_from_domain,
    clean_text,
    dedupe_images,
    detect_currency,
    extract_images,
    first_text,
    parse_price,
)
from crawler.extraction.snapshot import PageSnapshot

JSON_LD = "json_ld"
BRAND_STATE = "brand_state"
MICRODATA = "microdata"
OPEN_GRAPH = "open_graph"
DOM_SELECTORS = "dom_selectors"
HEURISTICS = "heuristics"

HEURISTIC_MIN_PATTERN_PRICE = 50
HEURISTIC_IMAGE_LIMIT = 5

NAME_HEURISTIC_SELECTORS = (
    "h1",
    '[class*="product-title"]',
    '[class*="product-name"]',
    '[class*="item-title"]',
    '[class*="title"]',
    "title",
)
PRICE_HEURISTIC_SELECTORS = (
    '[class*="price"]:not([class*="old"]):not([class*="original"])',
    ".price",
    '[class*="amount"]',
    '[class*="cost"]',
    "[data-price]",
)
IMAGE_HEURISTIC_SELECTORS = (
    ".product-image img",
    '[class*="gallery"] img',
    '[class*="media"] img',
    'img[alt*="product" i]',
    'img[src*="product" i]',
    "main img",
    "article img",
)
BRAND_HEURISTIC_SELECTORS = (
    '[class*="brand"]',
    '[class*="manufacturer"]',
    '[class*="vendor"]',
    ".logo",
)
DESCRIPTION_HEURISTIC_SELECTORS = (
    '[class*="description"]',
    '[class*="detail"]',
    '[class*="content"]',
    ".product-content",
    "article p",
)


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    extract: Callable[[PageSnapshot], ProductCandidate | None]


# ---------------------------------------------------------------------------
# schema.org JSON-LD
# ---------------------------------------------------------------------------


def extract_json_ld(snapshot: PageSnapshot) -> ProductCandidate | None:
    for script in snapshot.soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            continue
        product = _find_json_ld_product(data)
        if product is not None:
            return product_from_schema(product, base_url=snapshot.url)
    return None


def _find_json_ld_product(data: Any) -> dict[str, Any] | None:
    if isinstance(data, list):
        for item in data:
            found = _find_json_ld_product(item)
            if found is not None:
                return found
        return None
    if not isinstance(data, dict):
        return None

    declared = data.get("@type")
    types = declared if isinstance(declared, list) else [declared]
    if "Product" in types:
        return data
    if isinstance(data.get("product"), dict):
        return data["product"]
    graph = data.get("@graph")
    if graph is not None:
        return _find_json_ld_product(graph)
    return None


def product_from_schema(product: dict[str, Any], *, base_url: str) -> ProductCandidate:
    """
    Map a schema.org Product object onto a candidate.
    """

    offers = product.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if not isinstance(offers, dict):
        offers = {}

    base_price = parse_price(
        offers.get("price") or offers.get("lowPrice") or product.get("price")
    )
    brand = product.get("brand")
    if isinstance(brand, dict):
        brand = brand.get("name")
    category = product.get("category")
    if isinstance(category, list):
        category = category[-1] if category else None

    return ProductCandidate(
        name=clean_text(product.get("name")) or None,
        description=clean_text(product.get("description")) or None,
        brand=clean_text(brand) if isinstance(brand, str) else None,
        category=clean_text(category) if isinstance(category, str) else None,
        base_price=base_price,
        sale_price=parse_price(offers.get("salePrice")),
        currency=offers.get("priceCurrency") or None,
        images=_schema_images(product.get("image"), base_url=base_url),
        external_id=_schema_identifier(product),
    )


def _schema_images(value: Any, *, base_url: str) -> list[ProductImage]:
    raw_items = value if isinstance(value, list) else [value]
    images: list[ProductImage] = []
    for item in raw_items:
        if isinstance(item, str):
            url = absolute_url(item, base_url)
            alt = None
        elif isinstance(item, dict):
            url = absolute_url(item.get("url") or item.get("contentUrl"), base_url)
            alt = item.get("description") or item.get("caption")
        else:
            continue
        if url:
            images.append(ProductImage(url=url, alt=alt))
    return dedupe_images(images)


def _schema_identifier(product: dict[str, Any]) -> str | None:
    for key in ("sku", "productID", "mpn"):
        value = product.get(key)
        if isinstance(value, (str, int)) and str(value).strip():
            return str(value).strip()
    return None


# ---------------------------------------------------------------------------
# Microdata
# ---------------------------------------------------------------------------


def extract_microdata(snapshot: PageSnapshot) -> ProductCandidate | None:
    scope = snapshot.soup.select_one('[itemtype*="schema.org/Product"]')
    if scope is None:
        return None

    name = _itemprop(scope, "name")
    if not name:
        return None

    price = _itemprop(scope, "price")
    image_node = scope.select_one('[itemprop="image"]')
    images: list[ProductImage] = []
    if image_node is not None:
        url = absolute_url(
            image_node.get("src") or image_node.get("content") or image_node.get("href"),
            snapshot.url,
        )
        if url:
            images.append(ProductImage(url=url))

    return ProductCandidate(
        name=name,
        description=_itemprop(scope, "description"),
        brand=_itemprop(scope, "brand"),
        base_price=parse_price(price),
        currency=_itemprop(scope, "priceCurrency") or detect_currency(price),
        images=images,
        external_id=_itemprop(scope, "sku"),
    )


def _itemprop(scope: Tag, prop: str) -> str | None:
    node = scope.select_one(f'[itemprop="{prop}"]')
    if node is None:
        return None
    content = node.get("content")
    if isinstance(content, str) and content.strip():
        return clean_text(content)
    text = clean_text(node.get_text(" ", strip=True))
    return text or None


# ---------------------------------------------------------------------------
# Open Graph / social meta tags
# ---------------------------------------------------------------------------


def extract_open_graph(snapshot: PageSnapshot) -> ProductCandidate | None:
    soup = snapshot.soup

    def meta(key: str) -> str | None:
        node = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
        if node is None:
            return None
        content = clean_text(node.get("content"))
        return content or None

    title = meta("og:title") or meta("twitter:title")
    if not title:
        return None

    image = absolute_url(meta("og:image") or meta("twitter:image"), snapshot.url)
    return ProductCandidate(
        name=title,
        description=meta("og:description") or meta("twitter:description"),
        brand=meta("product:brand") or meta("og:brand"),
        base_price=parse_price(meta("product:price:amount") or meta("og:price:amount")),
        currency=meta("product:price:currency") or meta("og:price:currency"),
        images=[ProductImage(url=image)] if image else [],
    )


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


def extract_heuristics(snapshot: PageSnapshot) -> ProductCandidate | None:
    soup = snapshot.soup

    name = _heuristic_name(snapshot)
    if not name:
        return None
    price, price_text = _heuristic_price(snapshot)
    if not price:
        return None

    images: list[ProductImage] = []
    for selector in IMAGE_HEURISTIC_SELECTORS:
        images.extend(extract_images(soup, selector, base_url=snapshot.url))
        images = dedupe_images(images)
        if len(images) >= HEURISTIC_IMAGE_LIMIT:
            break

    return ProductCandidate(
        name=name,
        description=_heuristic_description(snapshot),
        brand=_heuristic_brand(snapshot),
        base_price=price,
        currency=detect_currency(price_text),
        images=images,
    )


def _heuristic_name(snapshot: PageSnapshot) -> str | None:
    for selector in NAME_HEURISTIC_SELECTORS:
        text = first_text(snapshot.soup, selector)
        if text and 3 < len(text) < 200:
            return text
    return None


def _heuristic_price(snapshot: PageSnapshot) -> tuple[int | None, str | None]:
    soup = snapshot.soup
    for selector in PRICE_HEURISTIC_SELECTORS:
        for node in soup.select(selector):
            text = clean_text(node.get_text(" ", strip=True)) or clean_text(node.get("data-price"))
            value = parse_price(text)
            if value is not None and value > 0:
                return value, text

    body = soup.body or soup
    all_text = clean_text(body.get_text(" ", strip=True))
    for pattern in CURRENCY_PRICE_PATTERNS:
        for match in pattern.finditer(all_text):
            value = parse_price(match.group(0))
            if value is not None and value > HEURISTIC_MIN_PATTERN_PRICE:
                return value, match.group(0)
    return None, None


def _heuristic_brand(snapshot: PageSnapshot) -> str | None:
    for selector in BRAND_HEURISTIC_SELECTORS:
        text = first_text(snapshot.soup, selector)
        if text and 1 < len(text) < 50:
            return text
    header_logo = snapshot.soup.select_one("header img[alt]")
    if header_logo is not None:
        alt = clean_text(header_logo.get("alt"))
        if 1 < len(alt) < 50:
            return alt
    return brand_from_domain(snapshot.url)


def _heuristic_description(snapshot: PageSnapshot) -> str | None:
    for selector in DESCRIPTION_HEURISTIC_SELECTORS:
        text = first_text(snapshot.soup, selector)
        if text and 20 < len(text) < 1000:
            return text
    return None
