"""Error types raised by Garden."""

from __future__ import annotations

from enum import StrEnum


def _first_line(cause: BaseException | str) -> str:
    # Playwright errors append a multi-line call log; keep the headline only.
    text = str(cause).strip()
    if not text:
        return repr(cause)
    return text.splitlines()[0]


class GardenError(Exception):
    """Base class for all Garden errors."""


class ConfigurationError(GardenError):
    """Process configuration is missing or invalid. Fatal, never retried."""


class ConfigLoadingError(ConfigurationError):
    """The configuration file could not be read."""


class DecryptionError(ConfigurationError):
    """An encrypted credential envelope is malformed or fails authentication."""


class FormatError(GardenError):
    """A script payload is not a well-formed script."""


class SiteNotFoundError(GardenError):
    def __init__(self, site_id: int) -> None:
        super().__init__(f"Site {site_id} not found.")
        self.site_id = site_id


class ScriptNotFoundError(GardenError):
    def __init__(self, site_id: int) -> None:
        super().__init__("No script uploaded for this site.")
        self.site_id = site_id


class RunStateError(GardenError):
    """A terminal run was asked to change."""


class LocatorError(GardenError):
    """A locator string cannot be turned into a driver locator."""


class StepError(GardenError):
    """A single script step failed against the live page."""

    def __init__(self, step_type: str, locator: str | None, cause: BaseException | str) -> None:
        target = f" at {locator}" if locator else ""
        super().__init__(f"{step_type}{target} failed: {_first_line(cause)}")
        self.step_type = step_type
        self.locator = locator
        self.cause = cause if isinstance(cause, BaseException) else None


class InferenceError(GardenError):
    """The inference service failed or answered with something unusable."""


class CaptchaError(GardenError):
    """The captcha anchor could not be located on the page."""


class CaptchaStage(StrEnum):
    LOCATED = "located"
    CONTEXT_CAPTURED = "context_captured"
    REDACTED = "redacted"
    REQUESTED = "requested"
    ACTIONS_VALIDATED = "actions_validated"
    REPLAYED = "replayed"
    RECORDED = "recorded"


class CaptchaSolveError(GardenError):
    """Solving failed after the inference request was built.

    The message is carried into the next attempt's captcha request as context.
    """

    def __init__(self, message: str, stage: CaptchaStage, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.cause = cause
