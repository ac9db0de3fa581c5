"""
Normalization layer for extracted products.
"""

from crawler.normalization.product_normalizer import (
    DEFAULT_CATEGORY,
    DEFAULT_CURRENCY,
    ProductNormalizer,
)

__all__ = ["DEFAULT_CATEGORY", "DEFAULT_CURRENCY", "ProductNormalizer"]
