"""Recorded script model.

A script is the JSON document produced by the recorder: an ordered list of steps
plus the secret placeholders that stand in for credential values. Steps form a
closed set of variants discriminated by their ``type`` field.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from garden.errors import FormatError

PLACEHOLDER_PATTERN = re.compile(r"^\{\{[^{}]+\}\}$")

ActionType = Literal[
    "click",
    "dblclick",
    "check",
    "uncheck",
    "hover",
    "tap",
    "focus",
    "fill",
    "type",
    "press",
    "selectOption",
]

ACTION_TYPES: frozenset[str] = frozenset(get_args(ActionType))
VALUE_ACTIONS: frozenset[str] = frozenset({"fill", "type", "press", "selectOption"})


class SecretKind(StrEnum):
    USERNAME = "username"
    PASSWORD = "password"
    GENERIC = "secret"


class SecretSpec(BaseModel):
    """Binds a ``{{secret_N}}`` placeholder to the kind of credential it stands for."""

    placeholder: str
    kind: SecretKind = SecretKind.GENERIC

    @field_validator("placeholder")
    @classmethod
    def _check_placeholder(cls, value: str) -> str:
        if not PLACEHOLDER_PATTERN.match(value):
            raise ValueError(f"placeholder must look like '{{{{name}}}}', got {value!r}")
        return value

    @field_validator("kind", mode="before")
    @classmethod
    def _accept_generic(cls, value: Any) -> Any:
        return SecretKind.GENERIC if value == "generic" else value


class ScriptMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: str | None = None
    version: int | None = None
    recorded_at: datetime | None = Field(default=None, alias="recordedAt")


class GotoStep(BaseModel):
    type: Literal["goto"]
    url: str

    def summary(self) -> dict[str, Any]:
        return {"type": self.type, "locator": None, "url": self.url}


class ActionStep(BaseModel):
    """An element interaction. ``value`` holds the text, key or option for value actions."""

    type: ActionType
    locator: str
    value: str | None = None
    args: str | None = None

    def summary(self) -> dict[str, Any]:
        return {"type": self.type, "locator": self.locator, "url": None}


class CaptchaStep(BaseModel):
    """A recorded captcha interaction, re-solved by the inference service at run time.

    Inner steps are plain element actions only: no navigation and no nesting.
    """

    type: Literal["captcha"]
    steps: list[ActionStep]

    @field_validator("steps", mode="before")
    @classmethod
    def _reject_nested(cls, value: Any) -> Any:
        if isinstance(value, list):
            for item in value:
                kind = item.get("type") if isinstance(item, Mapping) else getattr(item, "type", None)
                if kind in {"captcha", "goto"}:
                    raise ValueError(f"captcha steps cannot contain a {kind!r} step")
        return value

    @property
    def anchor(self) -> ActionStep | None:
        """The inner step used to find the captcha on the page."""
        clicks = [step for step in self.steps if step.type == "click" and step.locator]
        if clicks:
            return clicks[0]
        return next((step for step in self.steps if step.locator), None)

    def summary(self) -> dict[str, Any]:
        return {"type": self.type, "locator": None, "url": None, "steps": len(self.steps)}


Step = Annotated[GotoStep | ActionStep | CaptchaStep, Field(discriminator="type")]


class Script(BaseModel):
    meta: ScriptMeta | None = None
    steps: list[Step]
    secrets: list[SecretSpec]

    @property
    def captcha_count(self) -> int:
        return sum(1 for step in self.steps if isinstance(step, CaptchaStep))

    @property
    def starts_with_goto(self) -> bool:
        return bool(self.steps) and isinstance(self.steps[0], GotoStep)


def parse_script(raw: str | bytes | Mapping[str, Any]) -> Script:
    """Parse a script document, raising `FormatError` if it is not well formed.

    Accepts the JSON text or an already decoded mapping; the input is not modified.
    Locators are not checked here, a bad locator only fails when it is executed.
    """
    try:
        if isinstance(raw, str | bytes | bytearray):
            return Script.model_validate_json(raw)
        return Script.model_validate(raw)
    except ValidationError as e:
        raise FormatError(
            "Invalid script format: expected JSON with 'steps' and 'secrets' arrays. " + _first_problem(e)
        ) from e


def serialize_script(script: Script) -> str:
    return script.model_dump_json(by_alias=True, exclude_none=True, indent=2)


def _first_problem(error: ValidationError) -> str:
    problem = error.errors(include_url=False)[0]
    where = ".".join(str(part) for part in problem["loc"]) or "document"
    return f"({where}: {problem['msg']})"
