"""Tests for secret substitution and redaction."""

import pytest

from garden.core.crypto import SecretCipher
from garden.core.script import parse_script
from garden.core.secrets import REDACTION_MARKER, build_secret_values, redact_secrets, resolve_value
from garden.errors import ConfigurationError, DecryptionError

SCRIPT = parse_script(
    {
        "steps": [],
        "secrets": [
            {"placeholder": "{{secret_1}}", "kind": "username"},
            {"placeholder": "{{secret_2}}", "kind": "password"},
            {"placeholder": "{{secret_3}}", "kind": "secret"},
        ],
    }
)


def test_build_secret_values(cipher: SecretCipher) -> None:
    values = build_secret_values(SCRIPT, cipher.encrypt("ada"), cipher.encrypt("s3cret"), cipher)
    assert values == {"{{secret_1}}": "ada", "{{secret_2}}": "s3cret", "{{secret_3}}": ""}


def test_missing_credentials_resolve_to_empty() -> None:
    values = build_secret_values(SCRIPT, None, None, None)
    assert set(values.values()) == {""}


def test_credentials_without_key_are_fatal(cipher: SecretCipher) -> None:
    with pytest.raises(ConfigurationError, match="APP_ENC_KEY_BASE64"):
        build_secret_values(SCRIPT, cipher.encrypt("ada"), None, None)


def test_decryption_failures_propagate(cipher: SecretCipher) -> None:
    with pytest.raises(DecryptionError):
        build_secret_values(SCRIPT, "garbage", None, cipher)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("{{secret_1}}", "ada"),
        ("{{unknown}}", ""),
        ("hello {{secret_1}}", "hello {{secret_1}}"),
        ("{{secret_1}}!", "{{secret_1}}!"),
        ("plain", "plain"),
        (None, None),
        ("", ""),
    ],
)
def test_resolve_value(value: str | None, expected: str | None) -> None:
    assert resolve_value(value, {"{{secret_1}}": "ada"}) == expected


def test_redaction_removes_every_occurrence() -> None:
    text = "user ada typed s3cret then s3cret again"
    redacted = redact_secrets(text, {"a": "ada", "b": "s3cret", "c": ""})

    assert "ada" not in redacted
    assert "s3cret" not in redacted
    assert redacted.count(REDACTION_MARKER) == 3


def test_redaction_prefers_longest_value() -> None:
    redacted = redact_secrets("pass=hunter2", {"a": "hunter", "b": "hunter2"})
    assert redacted == f"pass={REDACTION_MARKER}"
