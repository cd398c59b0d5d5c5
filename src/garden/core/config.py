"""Configuration management for Garden."""

from __future__ import annotations

from pathlib import Path
from typing import Self

import yaml
from pydantic import AliasChoices, BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from garden.errors import ConfigLoadingError, ConfigurationError


class ViewportConfig(BaseModel):
    """Viewport configuration settings."""

    width: int = 1280
    height: int = 720


class BrowserConfig(BaseModel):
    """Browser configuration settings."""

    headless: bool = True
    timeout_ms: int = 10_000  # Default element and navigation timeout
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    args: list[str] = Field(default_factory=lambda: ["--disable-blink-features=AutomationControlled"])


class RunnerConfig(BaseModel):
    """Retry policy for whole runs."""

    max_retries: int = 1
    retry_delay_ms: int = 2000

    @property
    def attempts(self) -> int:
        return max(self.max_retries, 0) + 1


class CaptchaConfig(BaseModel):
    """Captcha solving settings."""

    connector: str = "openai"
    model: str = "gpt-5-mini"
    temperature: float | None = None
    max_images: int = 8
    max_prompt_chars: int = 8000
    locate_timeout_ms: int = 5000


class StorageConfig(BaseModel):
    data_dir: Path = Path("./data")
    db_path: Path | None = None

    @property
    def database_url(self) -> str:
        path = self.db_path or self.data_dir / "garden.db"
        return f"sqlite:///{path}"


class EventsConfig(BaseModel):
    keepalive_seconds: float = 15.0


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3000


class GardenConfig(BaseSettings):
    """Main Garden configuration.

    Values come from ``garden.yaml`` first, then ``GARDEN_*`` environment variables
    (``GARDEN_RUNNER__MAX_RETRIES=3``), then the defaults below.
    """

    model_config = SettingsConfigDict(env_prefix="GARDEN_", env_nested_delimiter="__", extra="ignore")

    storage: StorageConfig = Field(default_factory=StorageConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    captcha: CaptchaConfig = Field(default_factory=CaptchaConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the path to the configuration file."""
        return Path.cwd() / "garden.yaml"

    @classmethod
    def load_config(cls, path: Path | None = None) -> Self:
        """Load configuration from a YAML file, falling back to environment and defaults."""
        config_path = path or cls.get_config_path()

        if not config_path.exists():
            if path is not None:
                raise ConfigLoadingError(f"Configuration file {config_path} does not exist.")
            return cls()

        try:
            with open(config_path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
            return cls(**config_data)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigLoadingError(f"{e.__class__.__name__} loading {config_path}: {e}") from e

    def save(self, path: Path | None = None) -> Path:
        """Save configuration to a YAML file."""
        config_path = path or self.get_config_path()
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, sort_keys=False)
        return config_path


class GardenSecrets(BaseSettings):
    """Process-wide credentials, read once from the environment or ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    enc_key_base64: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("APP_ENC_KEY_BASE64", "GARDEN_ENC_KEY_BASE64")
    )
    openai_api_key: SecretStr | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    anthropic_api_key: SecretStr | None = Field(default=None, validation_alias="ANTHROPIC_API_KEY")

    def api_key_for(self, connector: str) -> str:
        """Return the inference credential for a connector or fail with `ConfigurationError`."""
        name = connector.lower()
        if name in {"openai", "gpt"}:
            key, env_var = self.openai_api_key, "OPENAI_API_KEY"
        elif name in {"anthropic", "claude"}:
            key, env_var = self.anthropic_api_key, "ANTHROPIC_API_KEY"
        else:
            raise ConfigurationError(f"Unsupported captcha connector '{connector}'.")

        if key is None or not key.get_secret_value():
            raise ConfigurationError(f"{env_var} is required to solve captcha steps.")
        return key.get_secret_value()
