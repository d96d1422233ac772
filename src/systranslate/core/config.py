"""Translation middleware configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (SYSTRANSLATE_* prefix)
    - Default values

Key components:
    - TranslateConfig: Main configuration model
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal
from unittest.mock import patch

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from systranslate.core.result import ConfigurationError

CONFIG_ENV_VAR = "SYSTRANSLATE_CONFIG"
DEFAULT_ACCEPT_SIGNAL = "application/x-es-module"


class TranslateConfig(BaseSettings):
    """Options fixed at middleware construction time."""

    model_config = SettingsConfigDict(
        env_prefix="SYSTRANSLATE_",
        extra="ignore",
    )

    server_root: Path = Field(
        default_factory=Path.cwd, description="Directory request paths are resolved against."
    )
    base_url: Path | None = Field(
        default=None,
        description="Directory module names and depCache keys are relative to (defaults to server_root).",
    )
    config_file: str = Field(
        default="config.js", description="SystemJS config file, relative to base_url."
    )
    bundle: bool = Field(
        default=True, description="Inline relative dependencies as named registrations."
    )
    dep_cache: bool = Field(
        default=False, description="Splice the depCache mapping into the config file."
    )
    watch_files: bool = Field(
        default=True, description="Invalidate on filesystem events instead of per-request hashing."
    )
    watch_invalidation: Literal["all", "dependents"] = Field(
        default="all",
        description="On a watched change, clear everything or only units that read the file.",
    )
    compiler: str | None = Field(
        default=None, description="Force a compiler backend ('tree-sitter' or 'lexer')."
    )
    accept_signal: str = Field(
        default=DEFAULT_ACCEPT_SIGNAL,
        description="Accept header token marking a module-aware client.",
    )
    extensions: list[str] = Field(
        default_factory=lambda: [".js"], description="File suffixes eligible for translation."
    )
    log_level: str = Field(default="INFO", description="Log level for systranslate output.")

    @field_validator("server_root", mode="after")
    @classmethod
    def ensure_server_root(cls, v: Path) -> Path:
        """Resolve the server root and require an existing directory."""
        resolved = v.expanduser().resolve()
        if not resolved.is_dir():
            raise ValueError(f"server_root is not a directory: {resolved}")
        return resolved

    @field_validator("extensions", mode="after")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]

    @model_validator(mode="after")
    def default_base_url(self) -> TranslateConfig:
        if self.base_url is None:
            self.base_url = self.server_root
        else:
            self.base_url = self.base_url.expanduser().resolve()
        return self

    @property
    def config_path(self) -> Path:
        """Absolute path of the SystemJS config file."""
        assert self.base_url is not None
        return (self.base_url / self.config_file).resolve()


@dataclass
class ConfigLoadResult:
    path: Path
    file_loaded: bool
    env_overrides: set[str]
    error: str | None = None


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR) or (Path.cwd() / "systranslate.toml")
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    parser = json.loads if suffix == ".json" else tomllib.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Syntax error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root in {path} must be a mapping.")

    # Allow the options to live under a [systranslate] table.
    section = data.get("systranslate")
    if isinstance(section, dict):
        return section
    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    """Detect which fields are overridden by environment variables."""
    prefix = TranslateConfig.model_config.get("env_prefix", "")
    overrides: set[str] = set()
    for field in TranslateConfig.model_fields:
        if f"{prefix}{field}".upper() in env_vars:
            overrides.add(field)
    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[TranslateConfig, ConfigLoadResult]:
    """
    Load configuration with Safe Mode fallback.
    If the file is invalid, returns default config + error message.
    Environment variables win over file entries.
    """
    env_vars: Mapping[str, str] = os.environ if env is None else {**os.environ, **env}
    resolved_path = _resolve_config_path(config_path, env_vars)
    env_overrides = _detect_env_overrides(env_vars)

    error: str | None = None
    file_loaded = False
    file_data: dict[str, Any] = {}

    try:
        file_data = _read_config_file(resolved_path)
        file_loaded = resolved_path.exists()
    except ConfigurationError as exc:
        error = str(exc)

    init_data = {key: value for key, value in file_data.items() if key not in env_overrides}

    context_manager = (
        patch.dict(os.environ, env_vars, clear=False) if env is not None else nullcontext()
    )

    with context_manager:
        try:
            config = TranslateConfig(**init_data)
        except ValidationError as exc:
            error = f"{error}; {exc}" if error else str(exc)
            config = TranslateConfig.model_construct(
                server_root=Path.cwd().resolve(), base_url=Path.cwd().resolve()
            )

    load_result = ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )

    return config, load_result


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_ACCEPT_SIGNAL",
    "ConfigLoadResult",
    "TranslateConfig",
    "load_config",
]
