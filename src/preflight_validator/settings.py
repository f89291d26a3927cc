"""Typed configuration backed by environment variables."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from preflight_validator.errors import ConfigurationError

_DEFAULT_ENV_FILES: tuple[Path, ...] = (Path(".env"),)


class ColorMode(str, Enum):
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"


class ValidatorSettings(BaseSettings):
    """Validator configuration loaded from ``PREFLIGHT_*`` variables and optional `.env` files."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="PREFLIGHT_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    probe_timeout: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Default per-probe timeout in seconds.",
    )
    total_timeout: float = Field(
        default=120.0,
        gt=0,
        description="Upper bound on the wall-clock time of a whole run.",
    )
    max_workers: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Maximum number of probes executing concurrently.",
    )
    registry_path: Path | None = Field(
        default=None,
        description="YAML registry declaration; the bundled workstation registry when unset.",
    )
    log_dir: Path | None = Field(
        default=None,
        description="Directory for rotating text and JSON log files.",
    )
    color: ColorMode = Field(default=ColorMode.AUTO, description="ANSI color policy.")


def _existing_env_files() -> list[str]:
    return [str(path) for path in _DEFAULT_ENV_FILES if path.exists()]


def get_settings(
    _env_files: Sequence[str] | None = None, **overrides: Any
) -> ValidatorSettings:
    """Load settings, applying explicit overrides (e.g. CLI flags) on top of the environment."""
    env_files = list(_env_files) if _env_files is not None else _existing_env_files()
    explicit = {key: value for key, value in overrides.items() if value is not None}
    try:
        if env_files:
            return ValidatorSettings(_env_file=env_files, **explicit)
        return ValidatorSettings(**explicit)
    except ValidationError as exc:
        first = exc.errors()[0]
        config_key = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigurationError(
            f"Invalid setting {config_key or '<unknown>'}: {first.get('msg', exc)}",
            config_key=config_key or None,
            original_error=exc,
        ) from exc


__all__ = ["ColorMode", "ValidatorSettings", "get_settings"]
