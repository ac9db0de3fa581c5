"""
Result sinks.
"""

from crawler.sinks.base import ProductSink
from crawler.sinks.memory import InMemoryProductSink, LoggingProductSink

__all__ = ["InMemoryProductSink", "LoggingProductSink", "ProductSink"]
