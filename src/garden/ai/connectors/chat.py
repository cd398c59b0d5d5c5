"""Connectors backed by langchain chat models."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from langchain_core.messages import HumanMessage, SystemMessage

from .base import CAPTCHA_STEPS_SCHEMA, CaptchaConnector, CaptchaReply, CaptchaRequest, parse_captcha_reply

if TYPE_CHECKING:
    from langchain_core.language_models.chat_models import BaseChatModel
    from langchain_core.messages import BaseMessage

RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {"name": "captcha_steps", "strict": True, "schema": CAPTCHA_STEPS_SCHEMA},
}


class ChatModelConnector(CaptchaConnector):
    """Sends the captcha as one multimodal chat turn and parses the JSON answer."""

    # Whether the provider accepts a JSON-schema ``response_format``
    STRUCTURED_OUTPUT: ClassVar[bool] = False

    def __init__(
        self,
        model_name: str,
        api_key: str | None = None,
        llm: BaseChatModel | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(model_name, **kwargs)
        self._api_key = api_key
        self._llm = llm

    @property
    def llm(self) -> BaseChatModel:
        """Get or create the langchain chat model."""
        if self._llm is None:
            self._llm = self._create_client()
        return self._llm

    @abstractmethod
    def _create_client(self) -> BaseChatModel: ...

    def build_messages(self, request: CaptchaRequest) -> list[BaseMessage]:
        content: list[str | dict[str, Any]] = [{"type": "text", "text": request.text}]
        content.extend({"type": "image_url", "image_url": {"url": url}} for url in request.images)
        return [SystemMessage(content=request.instructions), HumanMessage(content=content)]

    async def request_steps(self, request: CaptchaRequest) -> CaptchaReply:
        runnable = self.llm.bind(response_format=RESPONSE_FORMAT) if self.STRUCTURED_OUTPUT else self.llm
        result = await runnable.ainvoke(self.build_messages(request))
        return parse_captcha_reply(message_text(result))


def message_text(message: BaseMessage) -> str:
    """Concatenate the text parts of a chat model reply."""
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") in {"text", "output_text"}:
            parts.append(str(block.get("text", "")))
    return "".join(parts)
