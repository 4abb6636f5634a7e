"""Configuration management for the extension host.

Loads configuration from:
1. config.toml (defaults)
2. Environment variables (overrides)
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from repositories.catalog import DEFAULT_USER_AGENT

# Load .env file if present
load_dotenv()

DEFAULT_DATA_DIR = Path.home() / ".extension-host"


@dataclass
class PathsConfig:
    """Where the host keeps its state."""

    data_dir: str = ""  # default: ~/.extension-host
    extensions_dir: str = ""  # default: <data_dir>/extensions
    repositories_file: str = ""  # default: <data_dir>/repositories.json
    temp_dir: str = ""  # default: system temp directory

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser() if self.data_dir else DEFAULT_DATA_DIR

    @property
    def extensions_path(self) -> Path:
        if self.extensions_dir:
            return Path(self.extensions_dir).expanduser()
        return self.data_path / "extensions"

    @property
    def repositories_path(self) -> Path:
        if self.repositories_file:
            return Path(self.repositories_file).expanduser()
        return self.data_path / "repositories.json"

    @property
    def temp_path(self) -> Path | None:
        return Path(self.temp_dir).expanduser() if self.temp_dir else None


@dataclass
class NetworkConfig:
    """HTTP client settings shared by catalog fetches and downloads."""

    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 0  # seconds, 0 = no timeout

    @property
    def timeout_seconds(self) -> float | None:
        return self.timeout if self.timeout and self.timeout > 0 else None


@dataclass
class LoaderConfig:
    """Which installed extensions get loaded."""

    enabled: list[str] = field(default_factory=list)  # Whitelist (empty = all)
    disabled: list[str] = field(default_factory=list)  # Blacklist


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class Config:
    """Main configuration container."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        return cls(
            paths=PathsConfig(**data.get("paths", {})),
            network=NetworkConfig(**data.get("network", {})),
            loader=LoaderConfig(**data.get("loader", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )


def find_config_file() -> Path | None:
    """Find config.toml in current or parent directories.

    Returns:
        Path to config.toml or None if not found.
    """
    current = Path.cwd()

    for directory in [current, *current.parents]:
        config_path = directory / "config.toml"
        if config_path.exists():
            return config_path

    return None


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Optional explicit path to config.toml

    Returns:
        Config object with merged settings.
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = find_config_file()

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path, "rb") as f:
                config_data = tomllib.load(f)

    env_overrides = {
        "paths": {
            "data_dir": os.getenv("EXTENSION_HOST_DATA_DIR"),
            "extensions_dir": os.getenv("EXTENSION_HOST_EXTENSIONS_DIR"),
        },
        "network": {
            "timeout": _float_or_none(os.getenv("EXTENSION_HOST_TIMEOUT")),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL"),
        },
    }

    # Merge env overrides (only non-None values)
    for section, values in env_overrides.items():
        if section not in config_data:
            config_data[section] = {}
        for key, value in values.items():
            if value is not None:
                config_data[section][key] = value

    return Config.from_dict(config_data)


def _float_or_none(value: str | None) -> float | None:
    """Convert string to float, or return None."""
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


# Global config instance (lazy loaded)
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config object (loaded once, cached).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Force reload of configuration."""
    global _config
    _config = load_config()
    return _config
