"""Factory for creating captcha connectors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from garden.errors import ConfigurationError

from .anthropic import AnthropicConnector
from .openai import OpenAIConnector

if TYPE_CHECKING:
    from garden.core.config import CaptchaConfig, GardenSecrets

    from .chat import ChatModelConnector

# Registry of available connectors
CONNECTOR_REGISTRY: dict[str, type[ChatModelConnector]] = {
    "openai": OpenAIConnector,
    "gpt": OpenAIConnector,  # Alias
    "anthropic": AnthropicConnector,
    "claude": AnthropicConnector,  # Alias
}


def create_connector(config: CaptchaConfig, secrets: GardenSecrets) -> ChatModelConnector:
    """Create the configured connector.

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing.
    """
    provider = config.connector.lower()
    if provider not in CONNECTOR_REGISTRY:
        available = ", ".join(CONNECTOR_REGISTRY)
        raise ConfigurationError(f"Unsupported captcha connector '{config.connector}'. Available: {available}")

    connector_class = CONNECTOR_REGISTRY[provider]
    options: dict[str, Any] = {}
    if config.temperature is not None:
        options["temperature"] = config.temperature
    return connector_class(
        model_name=config.model or connector_class.DEFAULT_MODEL,
        api_key=secrets.api_key_for(provider),
        **options,
    )


def get_available_providers() -> list[str]:
    """Get list of available providers."""
    return list(CONNECTOR_REGISTRY)
