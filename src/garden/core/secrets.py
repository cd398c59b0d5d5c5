"""Run-time secret substitution and redaction."""

from __future__ import annotations

from typing import TYPE_CHECKING

from garden.core.crypto import KEY_ENV_VAR
from garden.core.script import PLACEHOLDER_PATTERN, SecretKind
from garden.errors import ConfigurationError

if TYPE_CHECKING:
    from garden.core.crypto import SecretCipher
    from garden.core.script import Script

REDACTION_MARKER = "[REDACTED]"

SecretValues = dict[str, str]


def build_secret_values(
    script: Script,
    username_enc: str | None,
    password_enc: str | None,
    cipher: SecretCipher | None,
) -> SecretValues:
    """Map each of the script's placeholders to its decrypted value.

    Kinds without a stored credential resolve to an empty string, so scripts that
    never type a username or password still run. Decryption errors propagate.
    """
    username = _decrypt(username_enc, cipher)
    password = _decrypt(password_enc, cipher)

    values: SecretValues = {}
    for secret in script.secrets:
        match secret.kind:
            case SecretKind.USERNAME:
                values[secret.placeholder] = username or ""
            case SecretKind.PASSWORD:
                values[secret.placeholder] = password or ""
            case _:
                values[secret.placeholder] = ""
    return values


def _decrypt(envelope: str | None, cipher: SecretCipher | None) -> str | None:
    if not envelope:
        return None
    if cipher is None:
        raise ConfigurationError(f"{KEY_ENV_VAR} is required to decrypt site credentials.")
    return cipher.decrypt(envelope)


def resolve_value(value: str | None, secrets: SecretValues) -> str | None:
    """Substitute a step value that is exactly a placeholder; anything else is literal text."""
    if not value:
        return value
    if PLACEHOLDER_PATTERN.match(value):
        return secrets.get(value, "")
    return value


def redact_secrets(text: str, secrets: SecretValues) -> str:
    """Replace every occurrence of a known secret value with `REDACTION_MARKER`."""
    # Longest first, so a secret that contains another is removed whole.
    for value in sorted({v for v in secrets.values() if v}, key=len, reverse=True):
        text = text.replace(value, REDACTION_MARKER)
    return text
