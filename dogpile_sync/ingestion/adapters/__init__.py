"""
Shelter adapters.

Each shelter in shelters.yaml names the adapter that understands its site.
The engine resolves that name here; an unknown name is a configuration
error and is never retried.
"""

from __future__ import annotations

from typing import Any

from dogpile_sync.core.errors import UnknownAdapterError
from dogpile_sync.ingestion.adapters.base import (
    BaseAdapter,
    NormalizedListing,
    RawListing,
    ScraperConfig,
)
from dogpile_sync.ingestion.adapters.fixture_adapter import FixtureAdapter

ADAPTER_REGISTRY: dict[str, type[BaseAdapter]] = {
    FixtureAdapter.ADAPTER_NAME: FixtureAdapter,
}


def get_adapter(adapter_type: str, options: dict[str, Any] | None = None) -> BaseAdapter:
    """
    Instantiate the adapter registered as ``adapter_type``.

    Raises:
        UnknownAdapterError: If the shelter names an adapter that does not exist
    """
    try:
        adapter_class = ADAPTER_REGISTRY[adapter_type]
    except KeyError:
        raise UnknownAdapterError(
            f"No adapter registered as '{adapter_type}'", operation="get_adapter"
        ) from None
    return adapter_class(options)


def register_adapter(name: str, adapter_class: type[BaseAdapter]) -> None:
    """Make a shelter-specific adapter available under ``name``."""
    if not (isinstance(adapter_class, type) and issubclass(adapter_class, BaseAdapter)):
        raise TypeError(f"{adapter_class!r} is not a BaseAdapter subclass")
    ADAPTER_REGISTRY[name] = adapter_class


def list_adapters() -> list[str]:
    return sorted(ADAPTER_REGISTRY)


def get_adapter_info(adapter_type: str) -> dict[str, str] | None:
    """Name, version and class of a registered adapter, or None."""
    adapter_class = ADAPTER_REGISTRY.get(adapter_type)
    if adapter_class is None:
        return None
    return {
        "name": adapter_class.ADAPTER_NAME,
        "version": adapter_class.ADAPTER_VERSION,
        "class": adapter_class.__name__,
    }


__all__ = [
    "ADAPTER_REGISTRY",
    "get_adapter",
    "register_adapter",
    "list_adapters",
    "get_adapter_info",
    "BaseAdapter",
    "ScraperConfig",
    "RawListing",
    "NormalizedListing",
    "FixtureAdapter",
]
