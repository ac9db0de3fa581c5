"""
Validation and normalization of extracted product candidates.
"""

from __future__ import annotations

import hashlib
import re

from crawler.adapters.base import BrandAdapter
from crawler.domain.product import ProductCandidate, ProductImage, ScrapedProduct
from crawler.errors import ProductRejectedError, RejectReason
from crawler.extraction.parsing import absolute_url, clean_text, dedupe_images, detect_currency, slugify

DEFAULT_CURRENCY = "USD"
DEFAULT_CATEGORY = "Unknown"

_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")


class ProductNormalizer:
    """
    Convert a candidate into a ``ScrapedProduct`` or reject it.

    Rejection reasons are ``missing_name`` and ``invalid_price``; every other
    gap is filled with a safe default.
    """

    def validate(
        self,
        candidate: ProductCandidate,
        source_url: str,
        adapter: BrandAdapter,
    ) -> ScrapedProduct:
        name = clean_text(candidate.name)
        if not name:
            raise ProductRejectedError(
                RejectReason.MISSING_NAME,
                f"Product at {source_url} has no name",
            )

        base_price = candidate.base_price
        if not isinstance(base_price, int) or isinstance(base_price, bool) or base_price <= 0:
            raise ProductRejectedError(
                RejectReason.INVALID_PRICE,
                f"Product at {source_url} has no positive price (got {base_price!r})",
            )

        brand = adapter.resolve_brand(candidate, source_url)
        sale_price = candidate.sale_price
        if not isinstance(sale_price, int) or isinstance(sale_price, bool) or sale_price <= 0:
            sale_price = None

        return ScrapedProduct(
            external_id=self.derive_external_id(candidate, source_url, adapter, brand),
            name=name,
            description=clean_text(candidate.description),
            brand=brand,
            category=clean_text(candidate.category) or DEFAULT_CATEGORY,
            subcategory=clean_text(candidate.subcategory) or None,
            base_price=base_price,
            sale_price=sale_price,
            currency=self.normalize_currency(candidate.currency),
            images=self.normalize_images(candidate.images or [], source_url),
            variants=list(candidate.variants or []),
            materials=list(candidate.materials) if candidate.materials else None,
            care_instructions=list(candidate.care_instructions) if candidate.care_instructions else None,
            tags=list(dict.fromkeys(tag for tag in candidate.tags or [] if tag)),
            gender=clean_text(candidate.gender) or None,
            season=clean_text(candidate.season) or None,
            url=source_url,
        )

    @staticmethod
    def derive_external_id(
        candidate: ProductCandidate,
        source_url: str,
        adapter: BrandAdapter,
        brand: str,
    ) -> str:
        if candidate.external_id and candidate.external_id.strip():
            return candidate.external_id.strip()
        from_url = adapter.external_id_from_url(source_url)
        if from_url:
            return from_url
        digest = hashlib.sha1(source_url.encode("utf-8")).hexdigest()[:12]
        return f"{slugify(brand) or adapter.slug}_{digest}"

    @staticmethod
    def normalize_currency(value: str | None) -> str:
        if not value:
            return DEFAULT_CURRENCY
        upper = value.strip().upper()
        if _CURRENCY_CODE.match(upper):
            return upper
        return detect_currency(value) or DEFAULT_CURRENCY

    @staticmethod
    def normalize_images(images: list[ProductImage], source_url: str) -> list[ProductImage]:
        normalized: list[ProductImage] = []
        for image in images:
            url = absolute_url(image.url, source_url)
            if url:
                normalized.append(ProductImage(url=url, alt=image.alt or None))
        return dedupe_images(normalized)
