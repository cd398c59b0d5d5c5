"""Browser sessions and end-of-attempt screenshots."""

from __future__ import annotations

from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from io import BytesIO
from typing import TYPE_CHECKING, Protocol

from PIL import Image
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from contextlib import AbstractAsyncContextManager

    from playwright.async_api import Page

    from garden.core.config import BrowserConfig

SETTLE_TIMEOUT_MS = 5000
SETTLE_PAUSE_MS = 500


class BrowserSessions(Protocol):
    """Opens a fresh, isolated page for one attempt and closes it afterwards."""

    def session(self) -> AbstractAsyncContextManager[Page]: ...


class ChromiumSessions:
    """Launches a new headless Chromium per session."""

    def __init__(self, config: BrowserConfig) -> None:
        self.config = config

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Page]:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=self.config.headless, args=self.config.args)
            try:
                context = await browser.new_context(
                    viewport={
                        "width": self.config.viewport.width,
                        "height": self.config.viewport.height,
                    },
                )
                context.set_default_timeout(self.config.timeout_ms)
                context.set_default_navigation_timeout(self.config.timeout_ms)
                page = await context.new_page()
                yield page
            finally:
                await browser.close()


@dataclass
class CapturedScreenshot:
    data: bytes
    mime_type: str
    width: int
    height: int


async def capture_screenshot(page: Page) -> CapturedScreenshot:
    """Give the page a bounded chance to settle, then take a full-page PNG."""
    with suppress(PlaywrightTimeoutError):
        await page.wait_for_load_state("domcontentloaded", timeout=SETTLE_TIMEOUT_MS)
    with suppress(PlaywrightTimeoutError):
        await page.wait_for_load_state("networkidle", timeout=SETTLE_TIMEOUT_MS)
    await page.wait_for_timeout(SETTLE_PAUSE_MS)

    data = await page.screenshot(full_page=True, type="png")
    with Image.open(BytesIO(data), formats=["png"]) as image:
        width, height = image.size
    return CapturedScreenshot(data=data, mime_type="image/png", width=width, height=height)
