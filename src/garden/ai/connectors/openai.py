"""OpenAI connector using langchain."""

from __future__ import annotations

from typing import ClassVar

from langchain_openai import ChatOpenAI

from garden.errors import ConfigurationError

from .chat import ChatModelConnector


class OpenAIConnector(ChatModelConnector):
    """Connector for OpenAI vision models, with schema-constrained output."""

    DEFAULT_MODEL: ClassVar[str] = "gpt-5-mini"
    STRUCTURED_OUTPUT: ClassVar[bool] = True

    def _create_client(self) -> ChatOpenAI:
        if not self._api_key:
            raise ConfigurationError("OPENAI_API_KEY is required to solve captcha steps.")

        return ChatOpenAI(model=self.model_name, api_key=self._api_key, **self.config)
