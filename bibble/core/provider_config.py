"""Provider configuration module.

This module provides configuration management for LLM providers, read from
environment variables and an optional ``.env`` file.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bibble.core.errors import ConfigError

ProviderType = Literal["openai", "anthropic", "google", "openrouter", "openai_compatible"]

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class ProviderSettings(BaseSettings):
    """Credentials and endpoints for all supported LLM providers."""

    # OpenAI settings
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    openai_base_url: Optional[str] = Field(None, description="Optional OpenAI API base URL")

    # Anthropic settings
    anthropic_api_key: Optional[str] = Field(None, description="Anthropic API key")
    anthropic_base_url: Optional[str] = Field(None, description="Optional Anthropic API base URL")

    # Google settings
    google_api_key: Optional[str] = Field(None, description="Google AI Studio API key")
    gemini_api_key: Optional[str] = Field(None, description="Alternative name for the Google key")

    # OpenRouter settings
    openrouter_api_key: Optional[str] = Field(None, description="OpenRouter API key")
    openrouter_base_url: str = Field(OPENROUTER_BASE_URL, description="OpenRouter API base URL")

    # Any other OpenAI-compatible endpoint
    openai_compatible_api_key: Optional[str] = Field(None, description="API key for a compatible endpoint")
    openai_compatible_base_url: Optional[str] = Field(None, description="Base URL of a compatible endpoint")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )


@dataclass
class ProviderConfig:
    """Configuration for a specific LLM provider instance.

    Attributes:
        provider: Which provider this configures
        api_key: The API key for the provider
        base_url: Optional base URL for the API
        extra_config: Additional provider-specific configuration
    """

    provider: ProviderType
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    extra_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, provider: str, settings: Optional[ProviderSettings] = None) -> "ProviderConfig":
        """Create a provider config from settings.

        Args:
            provider: The provider to load config for
            settings: Optional settings instance, will load from env if not provided

        Returns:
            A configured ProviderConfig instance

        Raises:
            ConfigError: If provider is not supported
        """
        if settings is None:
            settings = ProviderSettings()

        provider_configs = {
            "openai": lambda: cls(
                provider="openai",
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url
            ),
            "anthropic": lambda: cls(
                provider="anthropic",
                api_key=settings.anthropic_api_key,
                base_url=settings.anthropic_base_url
            ),
            "google": lambda: cls(
                provider="google",
                api_key=settings.google_api_key or settings.gemini_api_key
            ),
            "openrouter": lambda: cls(
                provider="openrouter",
                api_key=settings.openrouter_api_key,
                base_url=settings.openrouter_base_url
            ),
            "openai_compatible": lambda: cls(
                provider="openai_compatible",
                api_key=settings.openai_compatible_api_key,
                base_url=settings.openai_compatible_base_url
            ),
        }

        if provider not in provider_configs:
            raise ConfigError(f"Unsupported provider: {provider}", provider_name=provider)

        return provider_configs[provider]()

    @property
    def is_configured(self) -> bool:
        """Check if the provider has what it needs to make requests.

        Cloud providers need an API key; compatible endpoints need a base URL
        and may run without a key.
        """
        if self.provider == "openai_compatible":
            return bool(self.base_url)
        return bool(self.api_key)
