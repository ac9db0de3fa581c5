"""
Page snapshot capture and the extraction cascade.
"""

from crawler.extraction.pipeline import ExtractionPipeline
from crawler.extraction.snapshot import PageSnapshot, capture_snapshot
from crawler.extraction.strategies import (
    BRAND_STATE,
    DOM_SELECTORS,
    HEURISTICS,
    JSON_LD,
    MICRODATA,
    OPEN_GRAPH,
    ExtractionStrategy,
    extract_heuristics,
    extract_json_ld,
    extract_microdata,
    extract_open_graph,
)

__all__ = [
    "BRAND_STATE",
    "DOM_SELECTORS",
    "HEURISTICS",
    "JSON_LD",
    "MICRODATA",
    "OPEN_GRAPH",
    "ExtractionPipeline",
    "ExtractionStrategy",
    "PageSnapshot",
    "capture_snapshot",
    "extract_heuristics",
    "extract_json_ld",
    "extract_microdata",
    "extract_open_graph",
]
