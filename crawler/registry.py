"""
Brand adapter registry supporting built-ins, JSON configs and dynamic import paths.
"""

from __future__ import annotations

import importlib
from collections.abc import Iterable

from crawler.adapters import (
    AdapterConfig,
    ASOSAdapter,
    BrandAdapter,
    ConfigurableAdapter,
    GenericAdapter,
    HMAdapter,
    NikeAdapter,
    ZaraAdapter,
)
from crawler.errors import AdapterNotFoundError

GENERIC_KEY = "generic"


def normalize_brand(brand: str) -> str:
    return brand.strip().lower()


class AdapterRegistry:
    """
    Maps brand names and aliases to adapter instances.

    Unknown brands resolve to the generic adapter rather than failing.
    """

    def __init__(self, adapters: Iterable[BrandAdapter] | None = None) -> None:
        self._adapters: dict[str, BrandAdapter] = {}
        self._primary: dict[str, BrandAdapter] = {}
        self._generic: BrandAdapter = GenericAdapter()
        builtins: list[BrandAdapter] = [
            self._generic,
            ZaraAdapter(),
            HMAdapter(),
            NikeAdapter(),
            ASOSAdapter(),
        ]
        for adapter in [*builtins, *(adapters or [])]:
            self.register(adapter)

    def register(self, adapter: BrandAdapter, *, aliases: Iterable[str] = ()) -> None:
        primary = GENERIC_KEY if adapter.is_generic else normalize_brand(adapter.config.name)
        self._primary[primary] = adapter
        for key in (primary, *adapter.config.aliases, *aliases):
            normalized = normalize_brand(key)
            if normalized:
                self._adapters[normalized] = adapter
        if adapter.is_generic:
            self._generic = adapter

    def register_config(self, config: AdapterConfig) -> BrandAdapter:
        adapter = ConfigurableAdapter(config)
        self.register(adapter)
        return adapter

    def register_configs(self, configs: Iterable[AdapterConfig]) -> list[BrandAdapter]:
        return [self.register_config(config) for config in configs]

    def register_path(self, path: str, *, aliases: Iterable[str] = ()) -> BrandAdapter:
        adapter_class = self._load_dynamic_class(path)
        adapter = adapter_class()
        self.register(adapter, aliases=aliases)
        return adapter

    def get(self, brand: str) -> BrandAdapter:
        return self._adapters.get(normalize_brand(brand), self._generic)

    def supported_brands(self) -> list[str]:
        return sorted(self._primary)

    def is_supported(self, brand: str) -> bool:
        return normalize_brand(brand) in self._adapters

    def adapters(self) -> list[BrandAdapter]:
        return list(self._primary.values())

    @staticmethod
    def _load_dynamic_class(path: str) -> type[BrandAdapter]:
        if ":" not in path:
            raise AdapterNotFoundError(f"Invalid adapter path '{path}'. Use 'module.path:ClassName'.")

        module_path, class_name = path.split(":", 1)
        try:
            module = importlib.import_module(module_path)
        except ImportError as exc:
            raise AdapterNotFoundError(f"Unable to import adapter module '{module_path}'.") from exc
        loaded = getattr(module, class_name, None)
        if loaded is None:
            raise AdapterNotFoundError(f"Unable to resolve adapter class '{path}'.")
        if not isinstance(loaded, type) or not issubclass(loaded, BrandAdapter):
            raise AdapterNotFoundError(f"Class '{path}' must inherit from BrandAdapter.")
        return loaded
