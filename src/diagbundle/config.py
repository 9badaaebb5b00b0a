from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from diagbundle.exception import ConfigError
from diagbundle.share import get_share_dir
from diagbundle.utils.logging import logger

CONFIG_FILE_NAME = "config.toml"
DEFAULT_OUTPUT_NAME = "diagbundle_log.zip"


class ExportConfig(BaseModel):
    """Where artifacts are read from and where the bundle goes."""

    tombstone_dir: Path | None = Field(
        default=None, description="Crash artifact directory. Default: <share_dir>/tombstones"
    )
    output_path: Path | None = Field(
        default=None,
        description="Public bundle path. Default: ~/Downloads/diagbundle/diagbundle_log.zip",
    )
    cache_dir: Path | None = Field(
        default=None, description="App-private cache directory. Default: <share_dir>/cache"
    )
    share_subdir: str = Field(default="outbox", min_length=1)
    max_tombstones: int = Field(default=5, ge=0)
    index_command: list[str] | None = Field(
        default=None, description="Command notified with the bundle path after writing"
    )

    def resolved_tombstone_dir(self) -> Path:
        return self.tombstone_dir or get_share_dir() / "tombstones"

    def resolved_output_path(self) -> Path:
        return self.output_path or Path.home() / "Downloads" / "diagbundle" / DEFAULT_OUTPUT_NAME

    def resolved_cache_dir(self) -> Path:
        return self.cache_dir or get_share_dir() / "cache"


class LoggingConfig(BaseModel):
    levels: dict[str, str] = Field(default_factory=dict)
    rotation: str = "5 MB"


class HostConfig(BaseModel):
    """Facts about the host application that cannot be detected."""

    app_id: str = "diagbundle"
    app_version_name: str = ""
    app_version_code: int = 0
    native_library_dir: str | None = None
    signature_digest: str | None = None
    prebuilt_signature_digest: str | None = None


class Config(BaseModel):
    export: ExportConfig = Field(default_factory=ExportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    host: HostConfig = Field(default_factory=HostConfig)
    settings: dict[str, Any] = Field(default_factory=dict)


def get_default_config() -> Config:
    return Config()


def get_config_file() -> Path:
    return get_share_dir() / CONFIG_FILE_NAME


def load_config(config_file: Path | None = None) -> Config:
    """Load config from file, falling back to defaults when the default file is absent."""
    explicit = config_file is not None
    config_file = config_file or get_config_file()
    if not config_file.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_file}")
        logger.debug("No config file at {path}, using defaults", path=config_file)
        return get_default_config()
    try:
        text = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file {config_file}: {e}") from e
    return load_config_from_string(text)


def load_config_from_string(text: str) -> Config:
    """Parse config text, JSON first and TOML otherwise."""
    data: Any
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid configuration text: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Invalid configuration text: expected a table")
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
