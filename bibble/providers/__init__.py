"""Provider adapters."""

from bibble.providers.base import ChatCompletionParams, ProviderAdapter
from bibble.providers.registry import AdapterRegistry, create_adapter, default_adapter_registry

__all__ = [
    "ChatCompletionParams",
    "ProviderAdapter",
    "AdapterRegistry",
    "create_adapter",
    "default_adapter_registry",
]
