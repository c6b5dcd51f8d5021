"""Configuration loading and validation utilities."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

CONFIG_ENV_VAR = "PATHFIND_CONFIG"
DEFAULT_HIERARCHY_TEMPLATE = (
    "genus:species-subspecies:TRACKING:projectssid:sample:technology:library:lane"
)


class ConfigurationError(RuntimeError):
    """Raised when configuration cannot be loaded or is invalid."""


class DatabaseConfig(BaseModel):
    """One tracking database and the root its lanes live under."""

    name: str
    url: str
    root: str

    @field_validator("root")
    def _validate_root(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("database root must be an absolute path")
        return value.rstrip("/") or "/"


class LoggingConfig(BaseModel):
    level: str = Field(default="warning")
    json_logs: bool = Field(default=False)
    log_file: str | None = None


class RetryConfig(BaseModel):
    attempts: int = Field(default=3, ge=1)
    backoff_seconds: int = Field(default=1, ge=1)
    backoff_max_seconds: int = Field(default=8, ge=1)


class AppConfig(BaseModel):
    databases: List[DatabaseConfig]
    hierarchy_template: str = Field(default=DEFAULT_HIERARCHY_TEMPLATE)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    invocation_log: str | None = None

    @field_validator("databases")
    def _validate_databases(cls, value: List[DatabaseConfig]) -> List[DatabaseConfig]:
        if not value:
            raise ValueError("at least one database must be configured")
        names = [database.name for database in value]
        if len(set(names)) != len(names):
            raise ValueError("database names must be unique")
        return value

    @field_validator("hierarchy_template")
    def _validate_template(cls, value: str) -> str:
        if not value or any(not token for token in value.split(":")):
            raise ValueError("hierarchy_template must be colon separated field names")
        return value


def resolve_config_path(path: str | Path | None) -> Path:
    """Return the configuration path, falling back to ``PATHFIND_CONFIG``."""

    if path is None:
        env_value = os.environ.get(CONFIG_ENV_VAR)
        if not env_value:
            raise ConfigurationError(
                f"No configuration given; pass --config or set {CONFIG_ENV_VAR}"
            )
        path = env_value
    return Path(path).expanduser().resolve()


def load_config(path: str | Path | None) -> AppConfig:
    """Load and validate the YAML configuration file."""

    config_path = resolve_config_path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            raw: Dict[str, Any] = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuration file {config_path} is not valid YAML") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {exc}") from exc


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "RetryConfig",
    "ConfigurationError",
    "CONFIG_ENV_VAR",
    "DEFAULT_HIERARCHY_TEMPLATE",
    "load_config",
    "resolve_config_path",
]
