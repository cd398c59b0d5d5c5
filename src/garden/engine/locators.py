"""Turns recorded locator strings into Playwright locators.

Recorded scripts keep locators as the source text the recorder emitted, either
JavaScript codegen (``page.getByRole('button', { name: 'Sign in' })``) or Python
codegen (``page.get_by_role("button", name="Sign in")``). Anything that is not one
of the known accessor calls is used as a CSS selector.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from garden.errors import LocatorError

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

_STRING_LITERAL = r"""(['"`])((?:\\.|(?!\1).)*)\1"""
_FIRST_STRING = re.compile(_STRING_LITERAL)
_NAME_OPTION = re.compile(r"""\bname\s*[:=]\s*""" + _STRING_LITERAL)
_EXACT_OPTION = re.compile(r"\bexact\s*[:=]\s*(true|false|True|False)\b")
_CALL = re.compile(r"^page\.(\w+)\((.*)\)$", re.DOTALL)

# Recorded accessor name -> Playwright Page method
ACCESSORS: dict[str, str] = {
    "locator": "locator",
    "getByRole": "get_by_role",
    "get_by_role": "get_by_role",
    "getByLabel": "get_by_label",
    "get_by_label": "get_by_label",
    "getByText": "get_by_text",
    "get_by_text": "get_by_text",
    "getByPlaceholder": "get_by_placeholder",
    "get_by_placeholder": "get_by_placeholder",
    "getByTestId": "get_by_test_id",
    "get_by_test_id": "get_by_test_id",
    "getByTitle": "get_by_title",
    "get_by_title": "get_by_title",
    "getByAltText": "get_by_alt_text",
    "get_by_alt_text": "get_by_alt_text",
}

# Accessors that take an ``exact`` flag (get_by_test_id and locator do not)
_EXACT_CAPABLE = {"get_by_role", "get_by_label", "get_by_text", "get_by_placeholder", "get_by_title", "get_by_alt_text"}


@dataclass(frozen=True)
class LocatorSpec:
    """A parsed locator: which page method to call and with what."""

    method: str
    argument: str
    name: str | None = None
    exact: bool | None = None

    @property
    def is_css(self) -> bool:
        return self.method == "locator"

    def options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self.name is not None and self.method == "get_by_role":
            options["name"] = self.name
        if self.exact is not None and self.method in _EXACT_CAPABLE:
            options["exact"] = self.exact
        return options


def parse_locator(target: str) -> LocatorSpec:
    """Parse a recorded locator string. Never fails: unknown forms are CSS."""
    raw = target.strip()
    match = _CALL.match(raw)
    if match is None or match.group(1) not in ACCESSORS:
        return LocatorSpec(method="locator", argument=raw)

    method = ACCESSORS[match.group(1)]
    arguments = match.group(2)
    first = _FIRST_STRING.search(arguments)
    name = _NAME_OPTION.search(arguments)
    exact = _EXACT_OPTION.search(arguments)
    return LocatorSpec(
        method=method,
        argument=_unescape(first.group(2)) if first else "",
        name=_unescape(name.group(2)) if name else None,
        exact=exact.group(1).lower() == "true" if exact else None,
    )


def resolve_locator(page: Page, target: str) -> Locator:
    """Resolve a recorded locator string against a page.

    Only an empty target is rejected here, anything else fails later in the driver.
    """
    if not target or not target.strip():
        raise LocatorError("Locator is empty.")
    spec = parse_locator(target)
    accessor = getattr(page, spec.method)
    return accessor(spec.argument, **spec.options())


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)
