"""Tests for credential envelopes."""

import base64

import pytest

from garden.core.crypto import SecretCipher, generate_key
from garden.errors import ConfigurationError, DecryptionError


def test_encrypt_decrypt(cipher: SecretCipher) -> None:
    envelope = cipher.encrypt("hunter2")

    assert envelope.count(".") == 2
    assert "hunter2" not in envelope
    assert cipher.decrypt(envelope) == "hunter2"


def test_each_envelope_uses_a_fresh_iv(cipher: SecretCipher) -> None:
    assert cipher.encrypt("same") != cipher.encrypt("same")


def test_wrong_key_fails_authentication(cipher: SecretCipher) -> None:
    envelope = cipher.encrypt("hunter2")
    other = SecretCipher.from_base64(generate_key())

    with pytest.raises(DecryptionError):
        other.decrypt(envelope)


@pytest.mark.parametrize("envelope", ["", "abc", "a.b", "a..c", "!!.??.**"])
def test_malformed_envelopes(cipher: SecretCipher, envelope: str) -> None:
    with pytest.raises(DecryptionError):
        cipher.decrypt(envelope)


def test_decryption_error_is_a_configuration_error(cipher: SecretCipher) -> None:
    with pytest.raises(ConfigurationError):
        cipher.decrypt("a.b")


@pytest.mark.parametrize("key", [None, "", "not base64!", base64.b64encode(b"short").decode()])
def test_bad_keys(key: str | None) -> None:
    with pytest.raises(ConfigurationError):
        SecretCipher.from_base64(key)
