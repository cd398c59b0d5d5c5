"""Connectors to the vision models that solve captchas."""

from .anthropic import AnthropicConnector
from .base import CaptchaConnector, CaptchaModelStep, CaptchaReply, CaptchaRequest, parse_captcha_reply
from .factory import create_connector, get_available_providers
from .openai import OpenAIConnector

__all__ = [
    "AnthropicConnector",
    "CaptchaConnector",
    "CaptchaModelStep",
    "CaptchaReply",
    "CaptchaRequest",
    "OpenAIConnector",
    "create_connector",
    "get_available_providers",
    "parse_captcha_reply",
]
