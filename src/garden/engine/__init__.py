"""The run engine: step execution, captcha solving, orchestration and events."""

from .browser import BrowserSessions, ChromiumSessions, capture_screenshot
from .captcha import CaptchaAttempt, CaptchaSolver
from .events import EventBus, RunEvent, StreamMessage, Subscription
from .runner import PreparedRun, SiteRunner, build_base_url
from .steps import execute_step

__all__ = [
    "BrowserSessions",
    "CaptchaAttempt",
    "CaptchaSolver",
    "ChromiumSessions",
    "EventBus",
    "PreparedRun",
    "RunEvent",
    "SiteRunner",
    "StreamMessage",
    "Subscription",
    "build_base_url",
    "capture_screenshot",
    "execute_step",
]
