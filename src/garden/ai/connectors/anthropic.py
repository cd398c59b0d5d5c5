"""Anthropic Claude connector using langchain."""

from __future__ import annotations

from typing import ClassVar

from langchain_anthropic import ChatAnthropic

from garden.errors import ConfigurationError

from .chat import ChatModelConnector


class AnthropicConnector(ChatModelConnector):
    """Connector for Claude models. JSON output is enforced by the instructions only."""

    DEFAULT_MODEL: ClassVar[str] = "claude-sonnet-4-5"
    STRUCTURED_OUTPUT: ClassVar[bool] = False

    def _create_client(self) -> ChatAnthropic:
        if not self._api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is required to solve captcha steps.")

        return ChatAnthropic(model=self.model_name, api_key=self._api_key, max_tokens=2048, **self.config)
