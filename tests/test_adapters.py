"""
tests/test_adapters.py

Brand adapter behaviour: state parsing, DOM enrichment, URL identifiers,
page-preparation hooks, the adapter registry and JSON-configured adapters.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from conftest import FakePage
from crawler.adapters import (
    ASOSAdapter,
    ConfigurableAdapter,
    GenericAdapter,
    HMAdapter,
    NikeAdapter,
    ZaraAdapter,
)
from crawler.adapters.base import wait_for_selector
from crawler.adapters.generic import guess_category_from_url
from crawler.config.loader import load_adapter_configs
from crawler.domain.product import ProductCandidate
from crawler.errors import AdapterNotFoundError
from crawler.extraction.pipeline import ExtractionPipeline
from crawler.extraction.snapshot import PageSnapshot
from crawler.extraction.strategies import BRAND_STATE, JSON_LD
from crawler.registry import AdapterRegistry


def _page(*parts: str) -> str:
    return "<html><head></head><body>" + "".join(parts) + "</body></html>"


@pytest.fixture()
def pipeline() -> ExtractionPipeline:
    return ExtractionPipeline()


# ---------------------------------------------------------------------------
# Brand state parsing
# ---------------------------------------------------------------------------


class TestBrandState:
    def test_zara_preloaded_state(self, pipeline: ExtractionPipeline) -> None:
        state = {
            "product": {
                "id": 2398765,
                "name": "Satin Midi Dress",
                "price": 49.95,
                "category": ["Woman", "Dresses"],
                "images": [{"url": "/photos/satin-midi-dress.jpg", "alt": "Front"}],
                "variants": [
                    {"color": "Black", "size": "M", "stock": 3},
                    {"color": "Black", "size": "L", "stock": 0},
                ],
                "composition": ["100% polyester"],
            }
        }
        html = _page(f"<script>window.__PRELOADED_STATE__ = {json.dumps(state)};</script>")
        url = "https://www.zara.com/us/en/satin-midi-dress-p02398765.html"
        candidate = pipeline.extract(PageSnapshot(url=url, html=html), ZaraAdapter())

        assert candidate.source == BRAND_STATE
        assert candidate.external_id == "2398765"
        assert candidate.base_price == 4995
        assert candidate.category == "Dresses"
        assert candidate.images[0].url == "https://static.zara.net/photos/satin-midi-dress.jpg"
        assert [(v.size, v.available, v.stock_quantity) for v in candidate.variants] == [
            ("M", True, 3),
            ("L", False, 0),
        ]
        assert candidate.materials == ["100% polyester"]
        assert "zara" in candidate.tags

    def test_hm_product_articles_embedded_in_script(self, pipeline: ExtractionPipeline) -> None:
        articles = {
            "productArticles": [
                {
                    "name": "Relaxed Fit Hoodie",
                    "price": {"value": 24.99, "currency": "EUR"},
                    "categoryName": "Hoodies",
                    "articlesList": [
                        {
                            "code": "1234567001",
                            "color": "Grey",
                            "sizes": [
                                {"name": "M", "stock": {"stockLevel": 4}},
                                {"name": "L", "stock": {"stockLevel": 0}},
                            ],
                        }
                    ],
                }
            ]
        }
        html = _page(f"<script>var hmProduct = {json.dumps(articles)};</script>")
        url = "https://www2.hm.com/en_gb/productpage.1234567001.html"
        candidate = pipeline.extract(PageSnapshot(url=url, html=html), HMAdapter())

        assert candidate.source == BRAND_STATE
        assert candidate.name == "Relaxed Fit Hoodie"
        assert candidate.base_price == 2499
        assert candidate.currency == "EUR"
        assert [(v.sku, v.available) for v in candidate.variants] == [
            ("1234567001-M", True),
            ("1234567001-L", False),
        ]

    def test_asos_state_from_captured_global(self, pipeline: ExtractionPipeline) -> None:
        captured = {
            "asos": {
                "product": {
                    "name": "Oversized Oxford Shirt",
                    "price": {"current": 35.0, "rrp": 45.0, "currency": "GBP"},
                    "gender": "Men",
                    "variants": [
                        {"colour": "Navy", "sizes": [{"size": "M", "isInStock": True, "id": "v-1"}]},
                    ],
                }
            }
        }
        url = "https://www.asos.com/asos-design/oxford-shirt/prd/204912345"
        snapshot = PageSnapshot(url=url, html=_page(), globals=captured)
        candidate = pipeline.extract(snapshot, ASOSAdapter())

        assert candidate.source == BRAND_STATE
        assert candidate.base_price == 3500
        assert candidate.sale_price == 4500
        assert candidate.currency == "GBP"
        assert candidate.gender == "Men"
        assert candidate.variants[0].sku == "v-1"
        assert candidate.variants[0].stock_quantity == 1


class TestDomEnrichment:
    def test_zara_builds_color_size_matrix_when_winner_has_no_variants(
        self, pipeline: ExtractionPipeline
    ) -> None:
        json_ld = {"@type": "Product", "name": "Knit Top", "offers": {"price": "25.95", "priceCurrency": "USD"}}
        html = _page(
            f'<script type="application/ld+json">{json.dumps(json_ld)}</script>',
            '<div data-testid="product-color-selector">'
            '<button aria-label="Black"></button>'
            '<button aria-label="Ecru" class="is-disabled"></button>'
            "</div>",
            '<div data-testid="product-size-selector"><button>S</button><button>M</button></div>',
            '<span class="product-reference">Ref. 2398/765</span>',
        )
        url = "https://www.zara.com/us/en/knit-top-p02398765.html"
        candidate = pipeline.extract(PageSnapshot(url=url, html=html), ZaraAdapter())

        assert candidate.source == JSON_LD
        assert [(v.color, v.size, v.available) for v in candidate.variants] == [
            ("Black", "S", True),
            ("Black", "M", True),
            ("Ecru", "S", False),
            ("Ecru", "M", False),
        ]
        assert candidate.external_id == "Ref. 2398/765"
        assert candidate.tags == ["zara", "fast-fashion", "trendy"]

    def test_generic_guesses_category_and_tags(self, pipeline: ExtractionPipeline) -> None:
        json_ld = {"@type": "Product", "name": "Court Sneaker", "offers": {"price": 80}}
        html = _page(f'<script type="application/ld+json">{json.dumps(json_ld)}</script>')
        url = "https://shop.example.com/sneakers/court-sneaker"
        candidate = pipeline.extract(PageSnapshot(url=url, html=html), GenericAdapter())

        assert candidate.category == "Sneakers"
        assert candidate.tags == ["generic-extraction", "fashion"]

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://shop.example.com/mens-tshirts/123", "T-Shirts"),
            ("https://shop.example.com/women/dresses/maxi", "Dresses"),
            ("https://shop.example.com/gift-card", None),
        ],
    )
    def test_category_keywords(self, url: str, expected: str | None) -> None:
        assert guess_category_from_url(url) == expected

    def test_generic_brand_falls_back_to_domain(self) -> None:
        adapter = GenericAdapter()
        assert adapter.resolve_brand(ProductCandidate(brand=" Acme "), "https://x.example.com") == "Acme"
        assert adapter.resolve_brand(ProductCandidate(), "https://www.uniqlo.com/p/1") == "Uniqlo"
        assert NikeAdapter().resolve_brand(ProductCandidate(brand="Jordan"), "https://nike.com") == "Nike"


# ---------------------------------------------------------------------------
# URL identifiers
# ---------------------------------------------------------------------------


class TestExternalIds:
    @pytest.mark.parametrize(
        ("adapter", "url", "expected"),
        [
            (ZaraAdapter(), "https://www.zara.com/us/en/satin-midi-dress-p02398765.html", "02398765"),
            (HMAdapter(), "https://www2.hm.com/en_gb/productpage.1234567001.html", "1234567001"),
            (ASOSAdapter(), "https://www.asos.com/asos-design/shirt/prd/204912345", "204912345"),
            (NikeAdapter(), "https://www.nike.com/t/air-zoom-pegasus-41/FD2722-002", "FD2722-002"),
            (GenericAdapter(), "https://shop.example.com/product/abc-123?ref=x", "abc-123"),
            (GenericAdapter(), "https://shop.example.com/", None),
        ],
    )
    def test_id_patterns(self, adapter, url: str, expected: str | None) -> None:
        assert adapter.external_id_from_url(url) == expected


# ---------------------------------------------------------------------------
# Page preparation hooks
# ---------------------------------------------------------------------------


class TestHooks:
    def test_nike_hooks_wait_scroll_and_load_images(self) -> None:
        adapter = NikeAdapter()
        page = FakePage()

        async def run() -> None:
            for hook in adapter.pre_extract_hooks():
                await hook(page)

        asyncio.run(run())

        assert page.selectors_waited == [
            adapter.config.selectors.product_name,
            *adapter.config.wait_selectors,
        ]
        assert len(page.mouse.wheel_calls) == 5
        assert 2000 in page.waits

    def test_wait_for_selector_swallows_timeout(self) -> None:
        class SlowPage(FakePage):
            async def wait_for_selector(self, selector: str, **kwargs) -> None:
                raise PlaywrightTimeoutError("Timeout 10000ms exceeded")

        asyncio.run(wait_for_selector(SlowPage(), selector=".price", timeout_seconds=10.0))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_aliases_resolve_case_insensitively(self) -> None:
        registry = AdapterRegistry()
        assert isinstance(registry.get("H&M"), HMAdapter)
        assert isinstance(registry.get("hm"), HMAdapter)
        assert isinstance(registry.get(" ZARA "), ZaraAdapter)
        assert isinstance(registry.get("Nike"), NikeAdapter)

    def test_unknown_brand_falls_back_to_generic(self) -> None:
        registry = AdapterRegistry()
        assert isinstance(registry.get("Uniqlo"), GenericAdapter)
        assert registry.is_supported("Uniqlo") is False

    def test_supported_brands(self) -> None:
        assert AdapterRegistry().supported_brands() == ["asos", "generic", "h&m", "nike", "zara"]

    def test_register_path_with_extra_alias(self) -> None:
        registry = AdapterRegistry()
        adapter = registry.register_path("crawler.adapters.nike:NikeAdapter", aliases=("swoosh",))
        assert registry.get("swoosh") is adapter

    @pytest.mark.parametrize(
        "path",
        [
            "crawler.adapters.nike.NikeAdapter",
            "crawler.no_such_module:Adapter",
            "crawler.adapters.nike:MissingAdapter",
            "crawler.adapters.nike:NIKE_CONFIG",
            "crawler.errors:CrawlerError",
        ],
    )
    def test_register_path_errors(self, path: str) -> None:
        with pytest.raises(AdapterNotFoundError):
            AdapterRegistry().register_path(path)


# ---------------------------------------------------------------------------
# JSON-configured adapters
# ---------------------------------------------------------------------------


@pytest.fixture()
def adapters_file(tmp_path: Path) -> Path:
    payload = {
        "adapters": [
            {
                "name": "Uniqlo",
                "base_url": "https://www.uniqlo.com/",
                "aliases": ["uq"],
                "selectors": {"product_name": "h1.title", "price": ".price"},
                "features": {"has_lazy_images": "yes"},
                "state_globals": ["__PRELOADED_STATE__"],
                "state_path": "pdp.product",
                "queue_delay_seconds": 6,
            },
            {"name": "NoPrice", "base_url": "https://noprice.example.com", "selectors": {"product_name": "h1"}},
            "not-an-object",
        ]
    }
    path = tmp_path / "adapters.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestConfigurableAdapter:
    def test_load_adapter_configs_skips_invalid_entries(self, adapters_file: Path) -> None:
        configs = load_adapter_configs(config_path=str(adapters_file))

        assert [config.name for config in configs] == ["Uniqlo"]
        config = configs[0]
        assert config.base_url == "https://www.uniqlo.com"
        assert config.features.has_lazy_images is True
        assert config.features.uses_json_ld is True
        assert config.selectors.images == "img"
        assert config.queue_delay_seconds == 6.0

    def test_state_path_extraction(self, adapters_file: Path, pipeline: ExtractionPipeline) -> None:
        registry = AdapterRegistry()
        registry.register_configs(load_adapter_configs(config_path=str(adapters_file)))
        adapter = registry.get("uq")
        assert isinstance(adapter, ConfigurableAdapter)

        captured = {
            "__PRELOADED_STATE__": {
                "pdp": {
                    "product": {
                        "id": 4501,
                        "name": "Airism Tee",
                        "price": {"current": 14.9, "currency": "USD"},
                        "images": ["/img/airism-tee.jpg"],
                    }
                }
            }
        }
        snapshot = PageSnapshot(url="https://www.uniqlo.com/us/en/products/4501", html=_page(), globals=captured)
        candidate = pipeline.extract(snapshot, adapter)

        assert candidate.source == BRAND_STATE
        assert candidate.base_price == 1490
        assert candidate.currency == "USD"
        assert candidate.external_id == "4501"
        assert candidate.images[0].url == "https://www.uniqlo.com/img/airism-tee.jpg"

    def test_invalid_adapter_files(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_adapter_configs(config_path=str(tmp_path / "missing.json"))

        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"adapters": {"name": "x"}}), encoding="utf-8")
        with pytest.raises(ValueError, match="must be a list"):
            load_adapter_configs(config_path=str(bad))
