"""Configuration loading and validation for the vision chat client."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigValidationError

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "vision-chat"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Respond clearly, logically, and in a "
    "well-structured manner. Use proper grammar and punctuation."
)


class ApiConfig(BaseModel):
    """Chat-completion endpoints, provider defaults and request shaping."""

    provider: str = "groq"
    endpoints: dict[str, str] = Field(
        default_factory=lambda: {
            "groq": "https://api.groq.com/openai/v1/chat/completions",
            "openrouter": "https://openrouter.ai/api/v1/chat/completions",
        }
    )
    default_models: dict[str, str] = Field(
        default_factory=lambda: {
            "groq": "meta-llama/llama-4-scout-17b-16e-instruct",
            "openrouter": "meta-llama/llama-4-maverick-17b-128e-instruct",
        }
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_completion_tokens: int = Field(default=2000, ge=1, le=1_000_000)
    request_timeout_seconds: float = Field(default=120.0, gt=0, le=3600)
    connection_test_timeout_seconds: float = Field(default=10.0, gt=0, le=600)
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @field_validator("provider", mode="before")
    @classmethod
    def _validate_provider(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("String value must not be empty.")
        return normalized

    @field_validator("endpoints", mode="before")
    @classmethod
    def _validate_endpoints(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, dict) or not value:
            raise ValueError("endpoints must be a non-empty table of provider -> URL.")
        endpoints: dict[str, str] = {}
        for name, url in value.items():
            if not isinstance(name, str) or not name.strip():
                raise ValueError("endpoint names must be non-empty strings.")
            if not isinstance(url, str):
                raise ValueError("endpoint URLs must be strings.")
            parsed = urlparse(url.strip())
            if parsed.scheme.lower() not in {"http", "https"}:
                raise ValueError(f"endpoint {name!r} must use http or https scheme.")
            if not (parsed.hostname or "").strip():
                raise ValueError(f"endpoint {name!r} must include a hostname.")
            endpoints[name.strip().lower()] = url.strip()
        return endpoints

    @field_validator("default_models", mode="before")
    @classmethod
    def _validate_default_models(cls, value: Any) -> dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("default_models must be a table of provider -> model.")
        return {
            str(name).strip().lower(): str(model).strip()
            for name, model in value.items()
            if isinstance(model, str) and model.strip()
        }

    @field_validator("default_system_prompt", mode="before")
    @classmethod
    def _normalize_prompt(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()

    @model_validator(mode="after")
    def _validate_active_provider(self) -> ApiConfig:
        if self.provider not in self.endpoints:
            raise ValueError(f"api.provider {self.provider!r} has no configured endpoint.")
        return self


class AttachmentsConfig(BaseModel):
    """Limits applied when staging image attachments."""

    max_count: int = Field(default=10, ge=1, le=1000)
    max_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    allowed_type_prefixes: list[str] = Field(default_factory=lambda: ["image/"])

    @field_validator("allowed_type_prefixes", mode="before")
    @classmethod
    def _validate_prefixes(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            raise ValueError("allowed_type_prefixes must be a list.")
        normalized = [
            item.strip().lower() for item in value if isinstance(item, str) and item.strip()
        ]
        if not normalized:
            raise ValueError("allowed_type_prefixes must contain at least one prefix.")
        return normalized


class StorageConfig(BaseModel):
    """Location of the local key-value store."""

    path: str = "~/.local/state/vision-chat/storage.json"

    @field_validator("path", mode="before")
    @classmethod
    def _validate_path_string(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Path value must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("Path value must not be empty.")
        return normalized


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/vision-chat/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("log_file_path must not be empty.")
        return normalized


class Config(BaseModel):
    """Root configuration model for all sections."""

    api: ApiConfig = ApiConfig()
    attachments: AttachmentsConfig = AttachmentsConfig()
    storage: StorageConfig = StorageConfig()
    logging: LoggingConfig = LoggingConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    """Return a deep copy of validated default config data."""
    return deepcopy(DEFAULT_CONFIG)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump()
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (
            Exception
        ) as exc:  # noqa: BLE001 - we must not crash on invalid user config.
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = (
        _deep_merge(DEFAULT_CONFIG, raw_data)
        if isinstance(raw_data, dict)
        else _safe_default_config()
    )
    return _validate_config(merged)
