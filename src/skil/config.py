"""Settings for skil, layered from YAML files and ``SKIL_`` environment variables.

Layering order (later wins):

1. ``$XDG_CONFIG_HOME/skil/skil.config.yaml``
2. ``./skil.config.yaml`` in the working directory
3. ``SKIL_*`` environment variables (``SKIL_LOGGER__LEVEL=debug``)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

CONFIG_FILENAME = "skil.config.yaml"
CONFIG_DIR_NAME = "skil"

InstallMode = Literal["symlink", "copy"]


class LoggerSettings(BaseModel):
    level: Literal["debug", "info", "warning", "error"] = "warning"
    show_path: bool = False

    model_config = ConfigDict(extra="ignore")


class Settings(BaseSettings):
    default_agents: list[str] = Field(default_factory=list)
    """Agents used when skills are named but agents are not (non-interactive)."""

    install_mode: InstallMode = "symlink"
    git_host: str = "https://github.com"
    agents_dir: str = ".agents"
    max_parallel_fetches: int = 4
    http_timeout: float = 30.0
    logger: LoggerSettings = Field(default_factory=LoggerSettings)

    model_config = SettingsConfigDict(
        env_prefix="SKIL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("git_host")
    @classmethod
    def _strip_git_host(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("max_parallel_fetches")
    @classmethod
    def _positive_parallelism(cls, value: int) -> int:
        return max(1, value)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; the environment overrides them.
        return env_settings, init_settings, file_secret_settings


_settings: Settings | None = None


def config_home() -> Path:
    configured = os.environ.get("XDG_CONFIG_HOME")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".config"


def config_file_candidates(cwd: Path | None = None) -> list[Path]:
    base = cwd or Path.cwd()
    return [
        config_home() / CONFIG_DIR_NAME / CONFIG_FILENAME,
        base / CONFIG_FILENAME,
    ]


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(existing, value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as handle:
        payload = yaml.safe_load(handle)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return payload


def load_settings(config_path: Path | None = None, *, cwd: Path | None = None) -> Settings:
    """Build settings from the standard YAML layers, or from ``config_path`` only."""
    paths = [config_path] if config_path is not None else config_file_candidates(cwd)
    merged: dict[str, Any] = {}
    for path in paths:
        if path.is_file():
            merged = _deep_merge(merged, _load_yaml(path))
    return Settings(**merged)


def get_settings(config_path: Path | None = None) -> Settings:
    global _settings
    if config_path is not None:
        _settings = load_settings(config_path)
    elif _settings is None:
        _settings = load_settings()
    return _settings

