"""
crawler/domain/product.py

Canonical product record and the partial candidate produced by extraction.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class ProductImage:
    url: str
    alt: str | None = None


@dataclass(frozen=True)
class ProductVariant:
    color: str
    size: str
    sku: str
    available: bool
    stock_quantity: int
    price: int | None = None


@dataclass(frozen=True)
class ScrapedProduct:
    """
    Validated product record delivered to the downstream sink.

    Prices are integer minor-currency units (cents).
    """

    external_id: str
    name: str
    description: str
    brand: str
    category: str
    base_price: int
    currency: str
    url: str
    images: list[ProductImage] = field(default_factory=list)
    variants: list[ProductVariant] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    subcategory: str | None = None
    sale_price: int | None = None
    materials: list[str] | None = None
    care_instructions: list[str] | None = None
    gender: str | None = None
    season: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ScrapedProduct":
        data = dict(payload)
        data["images"] = [ProductImage(**item) for item in data.get("images") or []]
        data["variants"] = [ProductVariant(**item) for item in data.get("variants") or []]
        data["tags"] = list(data.get("tags") or [])
        return cls(**data)


@dataclass(frozen=True)
class ProductCandidate:
    """
    Partial product produced by one extraction strategy.

    Every field is optional; the normalizer decides whether the candidate is
    complete enough to become a ``ScrapedProduct``.
    """

    name: str | None = None
    description: str | None = None
    brand: str | None = None
    category: str | None = None
    subcategory: str | None = None
    base_price: int | None = None
    sale_price: int | None = None
    currency: str | None = None
    images: list[ProductImage] | None = None
    variants: list[ProductVariant] | None = None
    materials: list[str] | None = None
    care_instructions: list[str] | None = None
    tags: list[str] | None = None
    gender: str | None = None
    season: str | None = None
    external_id: str | None = None
    url: str | None = None
    source: str | None = None

    def is_empty(self) -> bool:
        return not self.name and not self.base_price
