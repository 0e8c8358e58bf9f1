"""Remote vector store adapters and the provider registry."""

from vector_sync.providers.base import (
    ProgressCallback,
    ProviderError,
    RemoteAdapter,
)
from vector_sync.providers.registry import ProviderRegistry, provider_registry

__all__ = [
    "ProgressCallback",
    "ProviderError",
    "ProviderRegistry",
    "RemoteAdapter",
    "provider_registry",
]
