"""Registry mapping provider names to adapter factories."""

from __future__ import annotations

import logging
from typing import Callable

from vector_sync.config_schema import ProviderConfig
from vector_sync.providers.base import RemoteAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ProviderConfig], RemoteAdapter]


def _create_openai(settings: ProviderConfig) -> RemoteAdapter:
    from vector_sync.providers.openai import (
        DEFAULT_BASE_URL,
        DEFAULT_CHUNK_SIZE,
        OpenAIAdapter,
    )

    return OpenAIAdapter(
        api_key=settings.api_key or "",
        store_id=settings.store_id,
        base_url=settings.base_url or DEFAULT_BASE_URL,
        chunk_size=settings.chunk_size or DEFAULT_CHUNK_SIZE,
    )


def _create_memory(settings: ProviderConfig) -> RemoteAdapter:
    from vector_sync.providers.memory import InMemoryAdapter

    return InMemoryAdapter(
        store_id=settings.store_id or "memory-store",
        chunk_size=settings.chunk_size or 1024 * 1024,
    )


class ProviderRegistry:
    """Name -> factory lookup.  Names are case-insensitive."""

    def __init__(self) -> None:
        self._factories: dict[str, AdapterFactory] = {}

    def register(self, name: str, factory: AdapterFactory) -> None:
        """Register (or replace) the factory for *name*."""
        self._factories[name.lower()] = factory

    def create(self, name: str, settings: ProviderConfig) -> RemoteAdapter:
        """Build an adapter for *name*.

        Raises:
            ValueError: If *name* is not registered, or the factory rejects
                the settings (e.g. a missing API key).
        """
        factory = self._factories.get(name.lower())
        if factory is None:
            raise ValueError(
                f"Unknown provider: '{name}'. "
                f"Available providers: {', '.join(self.names())}"
            )
        adapter = factory(settings)
        logger.debug("Created %s adapter", adapter.name)
        return adapter

    def names(self) -> list[str]:
        """Registered provider names, sorted."""
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._factories


provider_registry = ProviderRegistry()
provider_registry.register("openai", _create_openai)
provider_registry.register("memory", _create_memory)
