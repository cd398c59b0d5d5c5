"""Shared fixtures."""

from __future__ import annotations

import pytest

from garden.core.config import GardenConfig, GardenSecrets, RunnerConfig
from garden.core.crypto import SecretCipher, generate_key
from garden.engine.events import EventBus
from garden.storage import GardenDatabase


@pytest.fixture
def database() -> GardenDatabase:
    db = GardenDatabase("sqlite://")
    db.init()
    return db


@pytest.fixture
def bus(database: GardenDatabase) -> EventBus:
    return EventBus(database, keepalive_seconds=0.05)


@pytest.fixture
def enc_key() -> str:
    return generate_key()


@pytest.fixture
def cipher(enc_key: str) -> SecretCipher:
    return SecretCipher.from_base64(enc_key)


@pytest.fixture
def config() -> GardenConfig:
    return GardenConfig(runner=RunnerConfig(max_retries=1, retry_delay_ms=0))


@pytest.fixture
def secrets(enc_key: str, monkeypatch: pytest.MonkeyPatch) -> GardenSecrets:
    monkeypatch.setenv("APP_ENC_KEY_BASE64", enc_key)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("GARDEN_ENC_KEY_BASE64", raising=False)
    return GardenSecrets(_env_file=None)
