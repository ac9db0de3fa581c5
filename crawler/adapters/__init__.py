"""
Brand adapters.
"""

from crawler.adapters.asos import ASOSAdapter
from crawler.adapters.base import (
    AdapterConfig,
    AdapterFeatures,
    BrandAdapter,
    PageHook,
    SelectorConfig,
)
from crawler.adapters.configurable import ConfigurableAdapter
from crawler.adapters.generic import GenericAdapter
from crawler.adapters.hm import HMAdapter
from crawler.adapters.nike import NikeAdapter
from crawler.adapters.zara import ZaraAdapter

__all__ = [
    "ASOSAdapter",
    "AdapterConfig",
    "AdapterFeatures",
    "BrandAdapter",
    "ConfigurableAdapter",
    "GenericAdapter",
    "HMAdapter",
    "NikeAdapter",
    "PageHook",
    "SelectorConfig",
    "ZaraAdapter",
]
