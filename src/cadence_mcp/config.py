"""Configuration management for Cadence MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


_TRUTHY = {"1", "true"}


def env_flag(key: str) -> bool:
    """Return whether an environment toggle is set, re-reading it on every call."""

    value = os.environ.get(key)
    return value is not None and value.strip().lower() in _TRUTHY


class CadenceSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    worktree: Path = Field(default=Path("."), validation_alias="CADENCE_WORKTREE")
    state_file: str = Field(default=".cadence/session.json", validation_alias="CADENCE_STATE_FILE")
    resource_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("resources"),), validation_alias="CADENCE_RESOURCE_PATHS"
    )
    log_level: str = Field(default="INFO", validation_alias="CADENCE_LOG_LEVEL")
    max_retries: int = Field(default=3, validation_alias="CADENCE_MAX_RETRIES")
    stop_on_error: bool = Field(default=False, validation_alias="CADENCE_STOP_ON_ERROR")
    test_command: str | None = Field(default=None, validation_alias="CADENCE_TEST_COMMAND")
    lint_command: str | None = Field(default=None, validation_alias="CADENCE_LINT_COMMAND")
    default_cooldown_seconds: float = Field(
        default=60.0, validation_alias="CADENCE_DEFAULT_COOLDOWN_SECONDS"
    )
    max_wait_seconds: float = Field(default=300.0, validation_alias="CADENCE_MAX_WAIT_SECONDS")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "CADENCE_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("resource_paths", mode="before")
    @classmethod
    def _parse_resource_paths(cls, value):
        if value is None or value == "":
            return (Path("resources"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("resources"),)
        raise TypeError("CADENCE_RESOURCE_PATHS must be a list of paths or a path-separated string")

    @field_validator("state_file")
    @classmethod
    def _validate_state_file(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized or Path(normalized).is_absolute():
            raise ValueError("CADENCE_STATE_FILE must be a non-empty path relative to the worktree")
        return normalized

    @field_validator("max_retries")
    @classmethod
    def _validate_max_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("CADENCE_MAX_RETRIES must be >= 0")
        return value

    @field_validator("default_cooldown_seconds", "max_wait_seconds")
    @classmethod
    def _validate_positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Cooldown and wait ceilings must be positive")
        return value


@lru_cache(maxsize=1)
def get_settings() -> CadenceSettings:
    """Return cached settings instance."""

    settings = CadenceSettings()
    settings.worktree = settings.worktree.expanduser().resolve()
    settings.resource_paths = tuple(path.expanduser().resolve() for path in settings.resource_paths)
    return settings


__all__ = ["CadenceSettings", "env_flag", "get_settings"]
