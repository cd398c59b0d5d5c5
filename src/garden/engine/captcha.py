"""Captcha solving.

A recorded captcha step is not replayed literally. Its anchor element is found on
the live page, the enclosing captcha container is captured and scrubbed of secret
material, and a vision model is asked for the actions that solve the challenge.
Those actions are validated, scoped to the container and replayed through the
ordinary step executor. Every request leaves one trace row behind.
"""

from __future__ import annotations

import base64
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, TypedDict
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from garden.ai.connectors.base import CaptchaRequest
from garden.ai.prompts import CAPTCHA_INSTRUCTIONS
from garden.core.script import ACTION_TYPES, ActionStep
from garden.core.secrets import redact_secrets
from garden.engine.locators import resolve_locator
from garden.engine.steps import execute_step
from garden.errors import CaptchaError, CaptchaSolveError, CaptchaStage, LocatorError, StepError

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

    from garden.ai.connectors.base import CaptchaConnector, CaptchaModelStep
    from garden.core.config import CaptchaConfig
    from garden.core.script import CaptchaStep
    from garden.core.secrets import SecretValues
    from garden.engine.events import EventBus

logger = logging.getLogger(__name__)

CONTAINER_ATTRIBUTE = "data-garden-captcha"
CONTAINER_SELECTOR = f'[{CONTAINER_ATTRIBUTE}="1"]'
NO_STEPS_MESSAGE = "Captcha solver returned no steps."

# Selector engines other than CSS
_ENGINE_PREFIXES = ("text=", "xpath=", "id=", "css=", "role=", "internal:", "data-testid=")

# Marks the enclosing container and reports its markup and image sources.
# Explicit captcha markers win; the nearest grouping ancestor is the fallback.
_CAPTURE_SCRIPT = """
(el, attribute) => {
  const container =
    el.closest('#captcha') ??
    el.closest('[data-captcha]') ??
    el.closest('fieldset, [role="dialog"], [role="group"], form') ??
    el;
  for (const marked of document.querySelectorAll(`[${attribute}]`)) {
    if (marked !== container) marked.removeAttribute(attribute);
  }
  container.setAttribute(attribute, '1');
  const images = Array.from(container.querySelectorAll('img'))
    .map((img) => ({ originalSrc: img.getAttribute('src'), fetchSrc: img.src }))
    .filter((img) => Boolean(img.originalSrc || img.fetchSrc));
  return { html: container.outerHTML, images };
}
"""


class ImageSource(TypedDict):
    originalSrc: str | None
    fetchSrc: str | None


@dataclass(frozen=True)
class CaptchaImage:
    label: str
    original_src: str
    data_url: str
    # Other raw ``src`` values that resolve to the same image
    aliases: tuple[str, ...] = ()

    @property
    def sources(self) -> tuple[str, ...]:
        return (self.original_src, *self.aliases)


@dataclass(frozen=True)
class CaptchaAttempt:
    """Where in a run a captcha is being solved."""

    run_id: int
    attempt: int
    sequence: int
    previous_error: str | None = None


class CaptchaTraceStore(Protocol):
    def add_captcha_trace(
        self,
        run_id: int,
        attempt: int,
        sequence: int,
        model: str,
        prompt: str,
        response: str | None,
        error: str | None,
    ) -> Any: ...


class CaptchaSolver:
    """Solves captcha steps for one run with an inference connector."""

    def __init__(
        self,
        connector: CaptchaConnector,
        bus: EventBus,
        store: CaptchaTraceStore,
        config: CaptchaConfig,
    ) -> None:
        self.connector = connector
        self.bus = bus
        self.store = store
        self.config = config

    async def solve(self, page: Page, step: CaptchaStep, secrets: SecretValues, where: CaptchaAttempt) -> None:
        """Drive one captcha step from locating its anchor to the recorded trace.

        Raises:
            CaptchaError: The anchor element is missing from the page.
            CaptchaSolveError: Capturing, requesting, validating or replaying failed.
        """
        anchor = await self.locate(page, step)
        html, sources = await self.capture(anchor)
        images = await self.fetch_images(page, sources)
        fragment = redact_fragment(html, images, secrets)
        request = CaptchaRequest(
            instructions=CAPTCHA_INSTRUCTIONS,
            text=build_prompt_text(fragment, images, where.previous_error, secrets),
            images=[image.data_url for image in images],
        )
        prompt = truncate_text(request.prompt, self.config.max_prompt_chars)
        model = self.connector.model_name
        event = {"attempt": where.attempt, "sequence": where.sequence, "model": model}

        self.bus.publish(where.run_id, "captcha.request", **event)
        try:
            reply = await self.connector.request_steps(request)
        except Exception as e:  # noqa: BLE001
            message = redact_secrets(str(e) or e.__class__.__name__, secrets)
            self._fail(where, model, prompt, None, message)
            raise CaptchaSolveError(message, CaptchaStage.REQUESTED, e) from e

        response_text = redact_secrets(reply.response_text, secrets) or None
        self.bus.publish(
            where.run_id,
            "captcha.response",
            **event,
            steps=[model_step.summary() for model_step in reply.steps],
        )

        if not reply.steps:
            self._fail(where, model, prompt, response_text, NO_STEPS_MESSAGE)
            raise CaptchaSolveError(NO_STEPS_MESSAGE, CaptchaStage.REQUESTED)

        try:
            actions = [scope_model_step(model_step) for model_step in reply.steps]
        except CaptchaSolveError as e:
            self._fail(where, model, prompt, response_text, str(e))
            raise

        for action in actions:
            try:
                await execute_step(page, action, secrets)
            except StepError as e:
                message = redact_secrets(str(e), secrets)
                self._fail(where, model, prompt, response_text, message)
                raise CaptchaSolveError(message, CaptchaStage.REPLAYED, e) from e

        self._trace(where, model, prompt, response_text, None)
        logger.info("Solved captcha %s of run %s (attempt %s)", where.sequence, where.run_id, where.attempt)

    async def locate(self, page: Page, step: CaptchaStep) -> Locator:
        anchor = step.anchor
        if anchor is None:
            raise CaptchaError("Captcha step missing an initial click locator.")

        try:
            locator = resolve_locator(page, anchor.locator).first
        except LocatorError as e:
            raise CaptchaError(f"Captcha locator is invalid: {anchor.locator}") from e

        timeout = self.config.locate_timeout_ms
        try:
            with suppress(PlaywrightTimeoutError):
                await locator.wait_for(state="attached", timeout=timeout)
            if await locator.count() == 0:
                raise CaptchaError(f"Captcha locator not found: {anchor.locator}")
            await locator.scroll_into_view_if_needed(timeout=timeout)
        except PlaywrightError as e:
            raise CaptchaError(f"Captcha locator not usable: {anchor.locator}") from e
        return locator

    async def capture(self, anchor: Locator) -> tuple[str, list[ImageSource]]:
        try:
            result = await anchor.evaluate(_CAPTURE_SCRIPT, CONTAINER_ATTRIBUTE)
        except PlaywrightError as e:
            raise CaptchaSolveError(
                f"Could not capture captcha context: {e.message}", CaptchaStage.CONTEXT_CAPTURED, e
            ) from e
        return result["html"], result["images"]

    async def fetch_images(self, page: Page, sources: list[ImageSource]) -> list[CaptchaImage]:
        """Inline the container's images as data URLs, skipping anything that is not an image."""
        unique: dict[str, list[str]] = {}
        for source in sources:
            original = source.get("originalSrc") or source.get("fetchSrc")
            if not original:
                continue
            fetch_url = source.get("fetchSrc") or urljoin(page.url, original)
            raw = unique.setdefault(fetch_url, [])
            if original not in raw:
                raw.append(original)

        images: list[CaptchaImage] = []
        for fetch_url, (original, *aliases) in list(unique.items())[: self.config.max_images]:
            data_url = await self._inline(page, fetch_url)
            if data_url is not None:
                images.append(CaptchaImage(f"image-{len(images) + 1}", original, data_url, tuple(aliases)))
        return images

    async def _inline(self, page: Page, url: str) -> str | None:
        if url.startswith("data:"):
            return url if url.startswith("data:image/") else None

        try:
            response = await page.request.get(url)
            if not response.ok:
                logger.warning("Skipping captcha image %s: HTTP %s", url, response.status)
                return None
            content_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
            if not content_type.startswith("image/"):
                logger.warning("Skipping captcha image %s: content type %s", url, content_type)
                return None
            body = await response.body()
        except PlaywrightError as e:
            logger.warning("Failed to fetch captcha image %s: %s", url, e.message)
            return None
        return f"data:{content_type};base64,{base64.b64encode(body).decode('ascii')}"

    def _fail(self, where: CaptchaAttempt, model: str, prompt: str, response: str | None, error: str) -> None:
        self._trace(where, model, prompt, response, error)
        self.bus.publish(
            where.run_id,
            "captcha.error",
            attempt=where.attempt,
            sequence=where.sequence,
            model=model,
            error=error,
        )

    def _trace(self, where: CaptchaAttempt, model: str, prompt: str, response: str | None, error: str | None) -> None:
        try:
            self.store.add_captcha_trace(
                run_id=where.run_id,
                attempt=where.attempt,
                sequence=where.sequence,
                model=model,
                prompt=prompt,
                response=response,
                error=error,
            )
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to store captcha trace for run %s: %s", where.run_id, e)


def redact_fragment(html: str, images: list[CaptchaImage], secrets: SecretValues) -> str:
    """Scrub captured markup before it leaves the process.

    Password inputs are removed, ``value``/``data-value`` attributes stripped,
    image sources swapped for their ``image-N`` labels and secret values masked.
    """
    soup = BeautifulSoup(html, "html.parser")
    for field in soup.find_all("input"):
        if str(field.get("type", "")).lower() == "password":
            field.decompose()
    for tag in soup.find_all(True):
        for attribute in ("value", "data-value"):
            if attribute in tag.attrs:
                del tag[attribute]

    labels = {src: image.label for image in images for src in image.sources}
    for img in soup.find_all("img"):
        src = img.get("src")
        if isinstance(src, str) and src in labels:
            img["src"] = labels[src]

    # Serialization entity-escapes text and attributes, so mask the decoded values first.
    for text in soup.find_all(string=True):
        redacted = redact_secrets(str(text), secrets)
        if redacted != text:
            text.replace_with(type(text)(redacted))
    for tag in soup.find_all(True):
        for attribute, value in list(tag.attrs.items()):
            if isinstance(value, list):
                tag[attribute] = [redact_secrets(item, secrets) for item in value]
            elif isinstance(value, str):
                tag[attribute] = redact_secrets(value, secrets)

    return redact_secrets(str(soup), secrets)


def build_prompt_text(
    fragment: str,
    images: list[CaptchaImage],
    previous_error: str | None,
    secrets: SecretValues,
) -> str:
    lines = ["HTML fragment for the captcha section:", fragment, ""]
    if images:
        lines.append("Image map:")
        lines.extend(f"- {image.label}: {image.original_src}" for image in images)
    else:
        lines.append("No images found in fragment.")
    if previous_error:
        lines.append(f"Previous attempt error: {previous_error}")
    return redact_secrets("\n".join(lines), secrets)


def scope_model_step(model_step: CaptchaModelStep) -> ActionStep:
    """Validate one model action and pin its selector under the captcha container."""
    kind = model_step.type
    if kind == "captcha":
        raise CaptchaSolveError("Captcha solver returned nested captcha step.", CaptchaStage.ACTIONS_VALIDATED)
    if kind == "goto":
        raise CaptchaSolveError("Captcha solver returned disallowed goto step.", CaptchaStage.ACTIONS_VALIDATED)
    if kind not in ACTION_TYPES:
        raise CaptchaSolveError(f"Captcha solver returned unsupported step {kind!r}.", CaptchaStage.ACTIONS_VALIDATED)

    target = (model_step.target or "").strip()
    if not target:
        raise CaptchaSolveError(f"Captcha step missing locator for {kind}.", CaptchaStage.ACTIONS_VALIDATED)
    if target.startswith("page."):
        raise CaptchaSolveError(
            "Captcha selector must be CSS, not Playwright locator syntax.", CaptchaStage.ACTIONS_VALIDATED
        )
    if target.lower().startswith(_ENGINE_PREFIXES) or ">>" in target:
        raise CaptchaSolveError("Captcha selector must be plain CSS.", CaptchaStage.ACTIONS_VALIDATED)

    if _has_selector_list(target):
        raise CaptchaSolveError("Captcha selector must be a single CSS selector.", CaptchaStage.ACTIONS_VALIDATED)

    # A leading sibling combinator would select next to the container, not inside it.
    relative = target.removeprefix(CONTAINER_SELECTOR).strip()
    if not relative or relative.startswith(("~", "+")):
        raise CaptchaSolveError(
            "Captcha selector must target an element inside the captcha container.", CaptchaStage.ACTIONS_VALIDATED
        )
    return ActionStep(
        type=kind, locator=f"{CONTAINER_SELECTOR} {relative}", value=model_step.value, args=model_step.args
    )


def _has_selector_list(selector: str) -> bool:
    """Whether a CSS selector has a comma outside brackets, parentheses and strings."""
    depth = 0
    quote: str | None = None
    escaped = False
    for char in selector:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            return True
    return False


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}…"
