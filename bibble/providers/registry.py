"""Adapter factory keyed by provider name."""

import logging
from typing import Callable, Dict, List, Optional

from bibble.core.errors import ConfigError
from bibble.core.provider_config import ProviderConfig, ProviderSettings
from bibble.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ProviderConfig], ProviderAdapter]


def _openai(config: ProviderConfig) -> ProviderAdapter:
    from bibble.providers.openai import OpenAIAdapter
    return OpenAIAdapter(config)


def _anthropic(config: ProviderConfig) -> ProviderAdapter:
    from bibble.providers.anthropic import AnthropicAdapter
    return AnthropicAdapter(config)


def _google(config: ProviderConfig) -> ProviderAdapter:
    from bibble.providers.google import GoogleAdapter
    return GoogleAdapter(config)


class AdapterRegistry:
    """Maps provider names to adapter factories.

    Instances are independent; create one per application (or per test).
    """

    def __init__(self) -> None:
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, provider: str, factory: AdapterFactory) -> None:
        """Register a factory.

        Raises:
            ValueError: If the provider already has a factory
        """
        if provider in self._factories:
            raise ValueError(f"Provider '{provider}' is already registered")
        self._factories[provider] = factory

    def list_providers(self) -> List[str]:
        return list(self._factories.keys())

    def create(self, provider: str, config: Optional[ProviderConfig] = None) -> ProviderAdapter:
        """Build an adapter.

        Args:
            provider: Provider name
            config: Provider configuration; read from the environment if omitted

        Raises:
            ConfigError: If the provider is unknown or not configured
        """
        factory = self._factories.get(provider)
        if factory is None:
            raise ConfigError(
                f"Unsupported provider: {provider}. Available: {', '.join(self.list_providers())}",
                provider_name=provider
            )

        config = config or ProviderConfig.from_settings(provider, ProviderSettings())
        if not config.is_configured:
            raise ConfigError("Provider is not configured (missing API key or base URL)", provider_name=provider)

        logger.debug("Creating provider adapter", extra={"provider": provider})
        return factory(config)


def default_adapter_registry() -> AdapterRegistry:
    """A registry with every built-in adapter."""
    registry = AdapterRegistry()
    registry.register("openai", _openai)
    registry.register("openrouter", _openai)
    registry.register("openai_compatible", _openai)
    registry.register("anthropic", _anthropic)
    registry.register("google", _google)
    return registry


def create_adapter(provider: str, config: Optional[ProviderConfig] = None) -> ProviderAdapter:
    """Build an adapter with the default registry."""
    return default_adapter_registry().create(provider, config)
