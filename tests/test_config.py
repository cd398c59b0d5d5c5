"""Tests for configuration management."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from garden.core.config import GardenConfig, GardenSecrets
from garden.errors import ConfigLoadingError, ConfigurationError


def test_default_config() -> None:
    """Test default configuration values."""
    with patch.dict(os.environ, {}, clear=True):
        config = GardenConfig()

    assert config.storage.data_dir == Path("./data")
    assert config.storage.database_url == "sqlite:///data/garden.db"

    assert config.browser.headless is True
    assert config.browser.timeout_ms == 10_000
    assert (config.browser.viewport.width, config.browser.viewport.height) == (1280, 720)

    assert config.runner.max_retries == 1
    assert config.runner.attempts == 2
    assert config.captcha.connector == "openai"
    assert config.captcha.max_images == 8
    assert config.events.keepalive_seconds == 15
    assert config.server.port == 3000


def test_attempts_never_below_one() -> None:
    config = GardenConfig.model_validate({"runner": {"max_retries": -3}})
    assert config.runner.attempts == 1


def test_save_and_load_config(tmp_path: Path) -> None:
    """Test saving and loading configuration."""
    config = GardenConfig()
    config.runner.max_retries = 3
    config.captcha.model = "gpt-4o"
    path = config.save(tmp_path / "garden.yaml")

    loaded = GardenConfig.load_config(path)

    assert loaded.runner.max_retries == 3
    assert loaded.captcha.model == "gpt-4o"


def test_missing_default_file_uses_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert GardenConfig.load_config().server.host == "127.0.0.1"


def test_missing_explicit_file_fails(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadingError):
        GardenConfig.load_config(tmp_path / "nope.yaml")


def test_malformed_file_fails(tmp_path: Path) -> None:
    path = tmp_path / "garden.yaml"
    path.write_text("runner:\n  max_retries: [not a number]\n")
    with pytest.raises(ConfigLoadingError):
        GardenConfig.load_config(path)


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GARDEN_RUNNER__MAX_RETRIES", "4")
    monkeypatch.setenv("GARDEN_BROWSER__HEADLESS", "false")

    config = GardenConfig()

    assert config.runner.max_retries == 4
    assert config.browser.headless is False


def test_secrets_from_environment() -> None:
    """Test reading process credentials from the environment."""
    with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-env", "APP_ENC_KEY_BASE64": "a2V5"}, clear=True):
        secrets = GardenSecrets(_env_file=None)

    assert secrets.api_key_for("openai") == "sk-env"
    assert secrets.enc_key_base64 is not None
    assert secrets.enc_key_base64.get_secret_value() == "a2V5"


def test_missing_inference_key() -> None:
    with patch.dict(os.environ, {}, clear=True):
        secrets = GardenSecrets(_env_file=None)

    with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY is required"):
        secrets.api_key_for("claude")
    with pytest.raises(ConfigurationError, match="Unsupported"):
        secrets.api_key_for("llama")
