"""Configuration loading for hwtop."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from hwtop.errors import ConfigError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

MIN_POLL_RATE = 0.1


class HostConfig(BaseModel):
    """One SSH-reachable remote Linux host."""

    name: str
    host: str
    port: int = Field(default=22, ge=1, le=65535)
    username: str
    password: str | None = None
    key_filename: str | None = None
    connect_timeout: float = Field(default=10.0, gt=0)
    command_timeout: float = Field(default=5.0, gt=0)

    @field_validator("key_filename")
    @classmethod
    def _expand_key_path(cls, v: str | None) -> str | None:
        if not v:
            return None
        return str(Path(v).expanduser())


class MonitorConfig(BaseModel):
    poll_rate: float = 2.0
    include_local: bool = True
    history: int = Field(default=60, ge=1)

    @field_validator("poll_rate")
    @classmethod
    def _poll_rate_minimum(cls, v: float) -> float:
        return max(MIN_POLL_RATE, v)


class AppConfig(BaseModel):
    log_level: LogLevel = "INFO"
    log_file: str | None = None
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    hosts: list[HostConfig] = Field(default_factory=list)

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("hosts")
    @classmethod
    def _unique_host_names(cls, v: list[HostConfig]) -> list[HostConfig]:
        seen: set[str] = set()
        for host in v:
            if host.name in seen:
                raise ValueError(f"duplicate host name: {host.name}")
            seen.add(host.name)
        return v


def load_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed reading config yaml: {path}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping: {path}")
    return raw


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """
    Load and validate the configuration file.

    Args:
        config_path: YAML file to read. Defaults are returned when None.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    if config_path is None:
        return AppConfig()
    raw = load_yaml(Path(config_path))
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
