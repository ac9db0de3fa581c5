"""
Shared parsing helpers for product pages.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from crawler.domain.product import ProductImage, ProductVariant

NUMBER_REGEX = re.compile(r"\d[\d.,]*")
CURRENCY_PRICE_PATTERNS = (
    re.compile(r"\$\s?\d+(?:[.,]\d+)*"),
    re.compile(r"USD?\s*\d+(?:[.,]\d+)*", flags=re.IGNORECASE),
    re.compile(r"€\s?\d+(?:[.,]\d+)*"),
    re.compile(r"£\s?\d+(?:[.,]\d+)*"),
    re.compile(r"\d+(?:[.,]\d+)*\s*USD", flags=re.IGNORECASE),
)
CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP"}
MIN_IMAGE_URL_LENGTH = 10
UNAVAILABLE_CLASSES = frozenset(
    {"disabled", "is-disabled", "sold-out", "out-of-stock", "unavailable"}
)


def clean_text(value: str | None) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def parse_price(value: Any) -> int | None:
    """
    Convert a price in any common shape into integer minor units.

    Accepts numbers (major units), numeric strings with currency noise and
    either decimal convention, and dicts carrying ``amount``/``value``/
    ``current``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        for key in ("amount", "value", "current", "price"):
            if key in value:
                return parse_price(value[key])
        return None
    if isinstance(value, (int, float)):
        return _to_minor_units(Decimal(str(value)))
    if not isinstance(value, str):
        return None

    match = NUMBER_REGEX.search(value)
    if match is None:
        return None
    token = match.group(0).rstrip(".,")
    if not token:
        return None

    has_dot = "." in token
    has_comma = "," in token
    if has_dot and has_comma:
        decimal_sep = "." if token.rfind(".") > token.rfind(",") else ","
        thousands_sep = "," if decimal_sep == "." else "."
        token = token.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif has_comma:
        head, _, tail = token.rpartition(",")
        if token.count(",") == 1 and len(tail) == 2:
            token = f"{head}.{tail}"
        else:
            token = token.replace(",", "")
    elif token.count(".") > 1:
        token = token.replace(".", "")

    try:
        return _to_minor_units(Decimal(token))
    except InvalidOperation:
        return None


def _to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def detect_currency(text: str | None) -> str | None:
    if not text:
        return None
    for symbol, code in CURRENCY_SYMBOLS.items():
        if symbol in text:
            return code
    match = re.search(r"\b(USD|EUR|GBP|CAD|AUD)\b", text, flags=re.IGNORECASE)
    return match.group(1).upper() if match else None


def absolute_url(url: str | None, base_url: str) -> str | None:
    """
    Resolve protocol-relative and relative URLs; drop inline data URIs.
    """

    if not url:
        return None
    candidate = url.strip()
    if not candidate or candidate.startswith("data:"):
        return None
    if candidate.startswith("//"):
        return f"https:{candidate}"
    if candidate.startswith(("http://", "https://")):
        return candidate
    if not base_url:
        return None
    return urljoin(base_url if base_url.endswith("/") else f"{base_url}/", candidate)


def dedupe_images(images: list[ProductImage]) -> list[ProductImage]:
    seen: set[str] = set()
    deduped: list[ProductImage] = []
    for image in images:
        if image.url in seen:
            continue
        seen.add(image.url)
        deduped.append(image)
    return deduped


def first_text(soup: BeautifulSoup | Tag, selector: str | None) -> str | None:
    if not selector:
        return None
    node = soup.select_one(selector)
    if node is None:
        return None
    text = clean_text(node.get_text(" ", strip=True))
    return text or None


def all_texts(soup: BeautifulSoup | Tag, selector: str | None) -> list[str]:
    if not selector:
        return []
    texts: list[str] = []
    for node in soup.select(selector):
        text = clean_text(node.get_text(" ", strip=True))
        if text and text not in texts:
            texts.append(text)
    return texts


def extract_images(
    soup: BeautifulSoup | Tag,
    selector: str | None,
    *,
    base_url: str,
    limit: int | None = None,
) -> list[ProductImage]:
    if not selector:
        return []
    images: list[ProductImage] = []
    for node in soup.select(selector):
        raw = node.get("src") or node.get("data-src") or node.get("data-original")
        if not raw:
            srcset = node.get("srcset")
            raw = srcset.split(" ")[0] if srcset else None
        if not raw or raw.startswith("data:") or len(raw) <= MIN_IMAGE_URL_LENGTH:
            continue
        resolved = absolute_url(raw, base_url)
        if resolved is None:
            continue
        images.append(ProductImage(url=resolved, alt=clean_text(node.get("alt")) or None))
        if limit is not None and len(images) >= limit:
            break
    return dedupe_images(images)


def category_from_breadcrumbs(soup: BeautifulSoup | Tag, selector: str | None) -> str | None:
    if not selector:
        return None
    crumbs: list[str] = []
    for node in soup.select(selector):
        text = clean_text(node.get_text(" ", strip=True))
        if text and "home" not in text.lower():
            crumbs.append(text)
    return crumbs[-1] if crumbs else None


def brand_from_domain(url: str) -> str | None:
    hostname = (urlparse(url).hostname or "").lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    label = hostname.split(".")[0] if hostname else ""
    if not label:
        return None
    return label[:1].upper() + label[1:]


def is_available(node: Tag) -> bool:
    classes = set(node.get("class") or [])
    if classes & UNAVAILABLE_CLASSES:
        return False
    return node.get("disabled") is None and node.get("aria-disabled") != "true"


def option_label(node: Tag, attributes: tuple[str, ...]) -> str | None:
    for attribute in attributes:
        value = node.get(attribute)
        if isinstance(value, str) and value.strip():
            return clean_text(value)
    text = clean_text(node.get_text(" ", strip=True))
    return text or None


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def build_size_variants(
    *,
    color: str,
    sizes: list[tuple[str, bool]],
    sku_prefix: str,
) -> list[ProductVariant]:
    """
    One variant per size for a single color.
    """

    return [
        ProductVariant(
            color=color,
            size=size,
            sku=slugify(f"{sku_prefix}-{color}-{size}"),
            available=available,
            stock_quantity=1 if available else 0,
        )
        for size, available in sizes
    ]


def string_list(value: Any) -> list[str] | None:
    """
    Coerce a JSON value into a list of non-empty strings.
    """

    if value is None:
        return None
    if isinstance(value, str):
        items = [clean_text(value)]
    elif isinstance(value, list):
        items = []
        for item in value:
            if isinstance(item, str):
                items.append(clean_text(item))
            elif isinstance(item, dict):
                for key in ("name", "material", "materials", "text", "value"):
                    nested = item.get(key)
                    if isinstance(nested, str):
                        items.append(clean_text(nested))
                        break
                    if isinstance(nested, list):
                        items.extend(string_list(nested) or [])
                        break
    else:
        return None
    cleaned = [item for item in items if item]
    return cleaned or None


def gender_from_text(text: str | None) -> str | None:
    if not text:
        return None
    lowered = text.lower()
    if re.search(r"\bwom[ae]n", lowered) or "womenswear" in lowered:
        return "Women"
    if re.search(r"\bm[ae]n\b|\bmen'?s\b", lowered) or "menswear" in lowered:
        return "Men"
    if "kid" in lowered or "child" in lowered:
        return "Kids"
    if "unisex" in lowered:
        return "Unisex"
    return None


def keyword_tags(value: Any) -> list[str] | None:
    if isinstance(value, str):
        tags = [clean_text(part) for part in value.split(",")]
        return [tag for tag in tags if tag] or None
    return string_list(value)


def dig(data: Any, *path: str) -> Any | None:
    current = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current
