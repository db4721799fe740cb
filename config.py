"""Application configuration with schema validation.

Values come from a local ``.env`` file (if present) overridden by the process
environment. Settings are cached; call ``get_settings(reload=True)`` to
rebuild them after the environment changes.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from threading import Lock

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

__all__ = [
    "APIConfig",
    "DatabaseConfig",
    "FulfillmentConfig",
    "LoggingSettings",
    "Settings",
    "ValidationError",
    "clear_settings_cache",
    "get_settings",
]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return default


class DatabaseConfig(BaseModel):
    """MongoDB connection settings."""

    model_config = ConfigDict(frozen=True)

    url: str | None = Field(default=None, description="MongoDB connection URL")
    name: str | None = Field(default=None, description="Database name")
    timeout_ms: int = Field(default=5000, ge=100, le=60000)


class APIConfig(BaseModel):
    """HTTP server settings."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> list[str]:
        if value is None:
            return ["*"]
        if isinstance(value, str):
            items = [part.strip() for part in value.split(",") if part.strip()]
        elif isinstance(value, list):
            items = [str(part).strip() for part in value if str(part).strip()]
        else:
            raise TypeError("api.cors_origins must be a list[str] or comma-separated string")
        return items or ["*"]


class LoggingSettings(BaseModel):
    """Logging settings."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)
    override_root_handlers: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        text = str(value or "").strip().upper()
        if text in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return text
        return "INFO"

    @field_validator("json_logs", "override_root_handlers", mode="before")
    @classmethod
    def _normalize_flags(cls, value: object) -> bool:
        return _parse_bool(value, False)


class FulfillmentConfig(BaseModel):
    """Order fulfillment tuning."""

    model_config = ConfigDict(frozen=True)

    # Off forces every download counter update through read-then-write.
    atomic_increment: bool = Field(default=True)

    @field_validator("atomic_increment", mode="before")
    @classmethod
    def _normalize_atomic(cls, value: object) -> bool:
        return _parse_bool(value, True)


class Settings(BaseModel):
    """Top-level settings model."""

    model_config = ConfigDict(frozen=True)

    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    fulfillment: FulfillmentConfig = Field(default_factory=FulfillmentConfig)

    @classmethod
    def from_env(
        cls,
        *,
        env: Mapping[str, str] | None = None,
        env_file: str = ".env",
    ) -> Settings:
        """Build settings from `.env` then environment variables."""
        runtime_env = os.environ if env is None else env
        merged = _load_dotenv(Path(env_file))
        merged.update({str(k): str(v) for k, v in runtime_env.items()})
        return cls.model_validate(_build_payload(merged))


def _load_dotenv(path: Path) -> dict[str, str]:
    """Parse a minimal `.env` file format."""
    if not path.exists() or not path.is_file():
        return {}

    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, raw_value = line.split("=", 1)
        value = raw_value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        if key.strip():
            values[key.strip()] = value
    return values


def _pick(env: Mapping[str, str], key: str) -> str | None:
    value = str(env.get(key, "")).strip()
    return value or None


def _build_payload(env: Mapping[str, str]) -> dict[str, dict[str, str]]:
    """Map flat environment keys onto the nested settings layout."""
    layout = {
        "db": {"url": "DATABASE_URL", "name": "DATABASE_NAME", "timeout_ms": "DATABASE_TIMEOUT_MS"},
        "api": {"host": "HOST", "port": "PORT", "cors_origins": "CORS_ORIGINS"},
        "logging": {"level": "LOG_LEVEL", "json_logs": "LOG_JSON", "override_root_handlers": "LOG_OVERRIDE"},
        "fulfillment": {"atomic_increment": "ATOMIC_INCREMENT"},
    }
    payload: dict[str, dict[str, str]] = {}
    for section, fields in layout.items():
        values = {}
        for field, key in fields.items():
            value = _pick(env, key)
            if value is not None:
                values[field] = value
        payload[section] = values
    return payload


_settings_lock = Lock()
_settings_cache: Settings | None = None


def get_settings(*, reload: bool = False) -> Settings:
    """Return process-wide settings, building them on first use."""
    global _settings_cache
    with _settings_lock:
        if _settings_cache is None or reload:
            _settings_cache = Settings.from_env()
        return _settings_cache


def clear_settings_cache() -> None:
    global _settings_cache
    with _settings_lock:
        _settings_cache = None
