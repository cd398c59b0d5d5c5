"""Base connector interface for captcha-solving models."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from garden.errors import InferenceError


class CaptchaModelStep(BaseModel):
    """One action proposed by the model, before validation."""

    type: str
    locator: str | None = None
    selector: str | None = None
    url: str | None = None
    value: str | None = None
    args: str | None = None

    @property
    def target(self) -> str | None:
        return self.locator or self.selector

    def summary(self) -> dict[str, Any]:
        return {"type": self.type, "locator": self.target, "value": self.value}


class CaptchaRequest(BaseModel):
    """Everything sent to the model for one captcha."""

    instructions: str
    text: str
    images: list[str] = []  # data URLs, in image-N order

    @property
    def prompt(self) -> str:
        return f"{self.instructions}\n{self.text}"


class CaptchaReply(BaseModel):
    steps: list[CaptchaModelStep]
    response_text: str


_STEPS = TypeAdapter(list[CaptchaModelStep])

_NULLABLE_STRING = {"type": ["string", "null"]}

CAPTCHA_STEPS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "steps": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "type": {"type": "string"},
                    "locator": _NULLABLE_STRING,
                    "selector": _NULLABLE_STRING,
                    "url": _NULLABLE_STRING,
                    "value": _NULLABLE_STRING,
                    "args": _NULLABLE_STRING,
                },
                "required": ["type", "locator", "selector", "url", "value", "args"],
            },
        },
    },
    "required": ["steps"],
}


class CaptchaConnector(ABC):
    """Abstract base class for captcha-solving model connectors."""

    def __init__(self, model_name: str, **kwargs: Any) -> None:
        """Initialize the connector."""
        self.model_name = model_name
        self.config = kwargs

    @abstractmethod
    async def request_steps(self, request: CaptchaRequest) -> CaptchaReply:
        """Send one captcha request and return the proposed steps.

        Raises `InferenceError` (or the client's own error) when no usable answer arrives.
        """


def strip_markdown_code_fences(text: str) -> str:
    """Extract the body of a fenced code block, if the model wrapped its answer in one."""
    pattern = re.compile(r"```\s*(?:json)?\s*\n([\s\S]*?)\n```", re.IGNORECASE)
    m = pattern.search(text)
    if m:
        return m.group(1).strip()
    return text.strip()


def parse_captcha_reply(output_text: str) -> CaptchaReply:
    """Parse the model's output text into steps."""
    if not output_text or not output_text.strip():
        raise InferenceError("Captcha response missing output text.")

    try:
        parsed = json.loads(strip_markdown_code_fences(output_text))
    except json.JSONDecodeError as e:
        raise InferenceError(f"Captcha response is not valid JSON: {e}") from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("steps"), list):
        raise InferenceError("Captcha response did not include steps.")

    try:
        steps = _STEPS.validate_python(parsed["steps"])
    except ValidationError as e:
        raise InferenceError(f"Captcha response steps are malformed: {e.error_count()} problem(s).") from e
    return CaptchaReply(steps=steps, response_text=output_text)
