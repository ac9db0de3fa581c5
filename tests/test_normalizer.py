"""
tests/test_normalizer.py

Candidate validation: rejections, defaults and identifier derivation.
"""

from __future__ import annotations

import hashlib

import pytest

from crawler.adapters import GenericAdapter, NikeAdapter, ZaraAdapter
from crawler.domain.product import ProductCandidate, ProductImage, ProductVariant
from crawler.errors import ProductRejectedError, RejectReason
from crawler.normalization import DEFAULT_CATEGORY, DEFAULT_CURRENCY, ProductNormalizer

ZARA_URL = "https://www.zara.com/us/en/satin-midi-dress-p02398765.html"


@pytest.fixture()
def normalizer() -> ProductNormalizer:
    return ProductNormalizer()


class TestRejections:
    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_missing_name(self, normalizer: ProductNormalizer, name: str | None) -> None:
        with pytest.raises(ProductRejectedError) as excinfo:
            normalizer.validate(ProductCandidate(name=name, base_price=1000), ZARA_URL, ZaraAdapter())
        assert excinfo.value.reason == RejectReason.MISSING_NAME

    @pytest.mark.parametrize("price", [None, 0, -500, True])
    def test_invalid_price(self, normalizer: ProductNormalizer, price: object) -> None:
        with pytest.raises(ProductRejectedError) as excinfo:
            normalizer.validate(ProductCandidate(name="Dress", base_price=price), ZARA_URL, ZaraAdapter())
        assert excinfo.value.reason == RejectReason.INVALID_PRICE


class TestDefaults:
    def test_fills_safe_defaults(self, normalizer: ProductNormalizer) -> None:
        product = normalizer.validate(
            ProductCandidate(name="  Satin   Midi Dress ", base_price=4995, sale_price=0),
            ZARA_URL,
            ZaraAdapter(),
        )

        assert product.name == "Satin Midi Dress"
        assert product.description == ""
        assert product.category == DEFAULT_CATEGORY
        assert product.currency == DEFAULT_CURRENCY
        assert product.sale_price is None
        assert product.brand == "Zara"
        assert product.url == ZARA_URL
        assert product.images == []
        assert product.variants == []
        assert product.tags == []
        assert product.materials is None

    def test_keeps_extracted_values(self, normalizer: ProductNormalizer) -> None:
        variant = ProductVariant(color="Black", size="M", sku="blk-m", available=True, stock_quantity=2)
        candidate = ProductCandidate(
            name="Dress",
            base_price=4995,
            sale_price=5995,
            currency="eur",
            category="Dresses",
            variants=[variant],
            tags=["zara", "zara", "", "trendy"],
            materials=["100% polyester"],
            gender="Women",
        )
        product = normalizer.validate(candidate, ZARA_URL, ZaraAdapter())

        assert product.currency == "EUR"
        assert product.sale_price == 5995
        assert product.variants == [variant]
        assert product.tags == ["zara", "trendy"]
        assert product.materials == ["100% polyester"]
        assert product.gender == "Women"

    @pytest.mark.parametrize(("raw", "expected"), [("€", "EUR"), ("GBP ", "GBP"), ("dollars", "USD"), (None, "USD")])
    def test_currency_normalization(self, raw: str | None, expected: str) -> None:
        assert ProductNormalizer.normalize_currency(raw) == expected

    def test_images_are_absolute_and_deduplicated(self, normalizer: ProductNormalizer) -> None:
        candidate = ProductCandidate(
            name="Dress",
            base_price=4995,
            images=[
                ProductImage(url="/photos/a.jpg", alt=""),
                ProductImage(url="https://www.zara.com/photos/a.jpg", alt="dup"),
                ProductImage(url="data:image/png;base64,AAAA"),
            ],
        )
        product = normalizer.validate(candidate, ZARA_URL, ZaraAdapter())
        assert product.images == [ProductImage(url="https://www.zara.com/photos/a.jpg", alt=None)]


class TestExternalId:
    def test_prefers_extracted_identifier(self, normalizer: ProductNormalizer) -> None:
        candidate = ProductCandidate(name="Dress", base_price=100, external_id=" 0001 ")
        assert normalizer.validate(candidate, ZARA_URL, ZaraAdapter()).external_id == "0001"

    def test_falls_back_to_url_pattern(self, normalizer: ProductNormalizer) -> None:
        url = "https://www.nike.com/t/air-zoom-pegasus-41/FD2722-002"
        product = normalizer.validate(ProductCandidate(name="Pegasus", base_price=14000), url, NikeAdapter())
        assert product.external_id == "FD2722-002"

    def test_hashes_url_when_no_identifier(self, normalizer: ProductNormalizer) -> None:
        url = "https://www.acme.example/weekender"
        product = normalizer.validate(
            ProductCandidate(name="Weekender", base_price=8900, brand="Acme Outfitters"),
            url,
            GenericAdapter(),
        )

        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]
        assert product.brand == "Acme Outfitters"
        assert product.external_id == f"acme-outfitters_{digest}"

    def test_serialized_product_round_trips(self, normalizer: ProductNormalizer) -> None:
        product = normalizer.validate(
            ProductCandidate(
                name="Dress",
                base_price=4995,
                images=[ProductImage(url="https://cdn.example.com/a.jpg")],
            ),
            ZARA_URL,
            ZaraAdapter(),
        )
        payload = product.to_dict()

        assert payload["images"] == [{"url": "https://cdn.example.com/a.jpg", "alt": None}]
        assert type(product).from_dict(payload) == product
