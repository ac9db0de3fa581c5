"""
Adapter assembled entirely from a declarative ``AdapterConfig``.
"""

from __future__ import annotations

from typing import Any

from crawler.adapters.base import BrandAdapter, StateParser
from crawler.domain.product import ProductCandidate, ProductImage
from crawler.extraction.parsing import absolute_url, clean_text, dig, keyword_tags, parse_price
from crawler.extraction.snapshot import PageSnapshot


class ConfigurableAdapter(BrandAdapter):
    """
    Brand adapter loaded from JSON.

    When the config names ``state_globals`` and a dotted ``state_path``, the
    object at that path is read with common product field names.
    """

    def state_parser(self) -> StateParser | None:
        if not self.config.state_globals or not self.config.state_path:
            return None
        return self.parse_state

    def parse_state(self, snapshot: PageSnapshot) -> ProductCandidate | None:
        path = [part for part in (self.config.state_path or "").split(".") if part]
        for name in self.config.state_globals:
            product = dig(snapshot.global_value(name), *path)
            candidate = map_common_fields(product, base_url=snapshot.url)
            if candidate is not None:
                return candidate
        return None


def map_common_fields(product: Any, *, base_url: str) -> ProductCandidate | None:
    if not isinstance(product, dict):
        return None
    name = clean_text(product.get("name") or product.get("title") or product.get("displayName"))
    if not name:
        return None

    price = product.get("price")
    images: list[ProductImage] = []
    raw_images = product.get("images") or product.get("image") or []
    for item in raw_images if isinstance(raw_images, list) else [raw_images]:
        if isinstance(item, dict):
            raw = item.get("url") or item.get("src")
        else:
            raw = item
        url = absolute_url(raw if isinstance(raw, str) else None, base_url)
        if url:
            images.append(ProductImage(url=url))

    return ProductCandidate(
        name=name,
        description=clean_text(product.get("description")) or None,
        base_price=parse_price(dig(price, "current") if isinstance(price, dict) else price)
        or parse_price(product.get("currentPrice")),
        sale_price=parse_price(product.get("salePrice") or product.get("originalPrice")),
        currency=product.get("currency") or dig(product, "price", "currency"),
        images=images,
        category=product.get("category") or product.get("categoryName"),
        tags=keyword_tags(product.get("tags") or product.get("keywords")),
        external_id=str(product["id"]) if product.get("id") else None,
    )
