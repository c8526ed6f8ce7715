"""dockrelay configuration: Pydantic model, TOML loading, and env overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from dockrelay.core.constants import (
    CONFIG_FILENAME,
    POLL_INTERVAL_S,
    READ_CHUNK_BYTES,
    RUNTIME_TIMEOUT_SECONDS,
    _default_config_dir,
)
from dockrelay.core.exceptions import ConfigError, ConfigNotFoundError


def dockrelay_dir() -> Path:
    """Return the dockrelay config directory (not created on read)."""
    return _default_config_dir()


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class RuntimeConfig(BaseModel):
    """How to reach the container runtime."""

    model_config = {"extra": "forbid"}

    base_url: str = ""  # empty → DOCKER_HOST or the platform default socket
    timeout_seconds: int = RUNTIME_TIMEOUT_SECONDS

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if not (1 <= v <= 600):
            raise ValueError("timeout_seconds must be between 1 and 600")
        return v


class RelayConfig(BaseModel):
    """Input relay polling behaviour."""

    model_config = {"extra": "forbid"}

    poll_interval_s: float = POLL_INTERVAL_S
    read_chunk_bytes: int = READ_CHUNK_BYTES

    @field_validator("poll_interval_s")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if not (0.001 <= v <= 1.0):
            raise ValueError("poll_interval_s must be between 0.001 and 1.0")
        return v

    @field_validator("read_chunk_bytes")
    @classmethod
    def validate_chunk(cls, v: int) -> int:
        if not (1 <= v <= 65536):
            raise ValueError("read_chunk_bytes must be between 1 and 65536")
        return v


class SessionDefaults(BaseModel):
    """Defaults applied to ``dockrelay run`` when flags are not given."""

    model_config = {"extra": "forbid"}

    working_dir: str = ""
    tty: bool = False


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class DockRelayConfig(BaseModel):
    """Root dockrelay configuration model."""

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    session: SessionDefaults = Field(default_factory=SessionDefaults)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _config_path: Path | None = None

    @property
    def config_path(self) -> Path | None:
        return self._config_path


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _config_file_path() -> Path:
    if env_path := os.environ.get("DOCKRELAY_CONFIG"):
        return Path(env_path)
    return dockrelay_dir() / CONFIG_FILENAME


def load_config(path: Path | str | None = None) -> DockRelayConfig:
    """
    Load DockRelayConfig from a TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (DOCKRELAY_*)
      2. Config file
      3. Built-in defaults

    When *path* is omitted and no file exists at the default location the
    defaults are used.  An explicit *path* that does not exist is an error.
    """
    import tomllib

    explicit = path is not None
    cfg_path = Path(path) if path is not None else _config_file_path()

    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc
    elif explicit:
        raise ConfigNotFoundError(f"Config file not found: {cfg_path}")

    _apply_env_overrides(data)

    try:
        config = DockRelayConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {cfg_path}: {exc}") from exc

    if cfg_path.exists():
        config._config_path = cfg_path
    return config


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay DOCKRELAY_* environment variables onto parsed TOML."""
    if level := os.environ.get("DOCKRELAY_LOG_LEVEL", ""):
        data.setdefault("logging", {})["level"] = level
    if host := os.environ.get("DOCKRELAY_DOCKER_HOST", ""):
        data.setdefault("runtime", {})["base_url"] = host
    if timeout := os.environ.get("DOCKRELAY_RUNTIME_TIMEOUT", ""):
        try:
            data.setdefault("runtime", {})["timeout_seconds"] = int(timeout)
        except ValueError as exc:
            raise ConfigError(f"DOCKRELAY_RUNTIME_TIMEOUT must be an integer: {timeout!r}") from exc
    if interval := os.environ.get("DOCKRELAY_POLL_INTERVAL_S", ""):
        try:
            data.setdefault("relay", {})["poll_interval_s"] = float(interval)
        except ValueError as exc:
            raise ConfigError(f"DOCKRELAY_POLL_INTERVAL_S must be a number: {interval!r}") from exc
