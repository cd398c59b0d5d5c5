"""Executes single script steps against a live page."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, assert_never

from playwright.async_api import Error as PlaywrightError

from garden.core.script import ActionStep, CaptchaStep, GotoStep
from garden.core.secrets import resolve_value
from garden.engine.locators import resolve_locator
from garden.errors import LocatorError, StepError

if TYPE_CHECKING:
    from playwright.async_api import Page

    from garden.core.script import Step
    from garden.core.secrets import SecretValues

logger = logging.getLogger(__name__)


async def execute_step(page: Page, step: Step, secrets: SecretValues) -> None:
    """Run one non-captcha step.

    Raises `StepError` when the element cannot be acted on or a required value is
    missing after secret substitution.
    """
    match step:
        case GotoStep():
            await _goto(page, step)
        case ActionStep():
            await _act(page, step, secrets)
        case CaptchaStep():
            raise StepError(step.type, None, "captcha steps must be run through the captcha solver")
        case _:
            assert_never(step)


async def _goto(page: Page, step: GotoStep) -> None:
    logger.debug("goto %s", step.url)
    try:
        # DOM content only, waiting for network idle would stall on chatty pages
        await page.goto(step.url, wait_until="domcontentloaded")
    except PlaywrightError as e:
        raise StepError(step.type, step.url, e) from e


async def _act(page: Page, step: ActionStep, secrets: SecretValues) -> None:
    value = resolve_value(step.value, secrets)
    match step.type:
        case "fill" | "type" if value is None:
            raise StepError(step.type, step.locator, f"Missing value for {step.type}")
        case "press" if not value:
            raise StepError(step.type, step.locator, "Missing key for press")
        case "selectOption" if not value:
            raise StepError(step.type, step.locator, "Missing value for selectOption")

    logger.debug("%s %s", step.type, step.locator)
    try:
        locator = resolve_locator(page, step.locator)
        match step.type:
            case "click":
                await locator.click()
            case "dblclick":
                await locator.dblclick()
            case "check":
                await locator.check()
            case "uncheck":
                await locator.uncheck()
            case "hover":
                await locator.hover()
            case "tap":
                await locator.tap()
            case "focus":
                await locator.focus()
            case "fill":
                await locator.fill(value)
            case "type":
                await locator.press_sequentially(value)
            case "press":
                await locator.press(value)
            case "selectOption":
                await locator.select_option(value)
            case _:
                assert_never(step.type)
    except (PlaywrightError, LocatorError) as e:
        raise StepError(step.type, step.locator, e) from e
