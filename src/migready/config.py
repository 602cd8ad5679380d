"""Global configuration — XDG paths, YAML file, env vars, defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from migready.transport.client import Credentials

DEFAULT_API_VERSION = "v60.0"


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "migready"
    return Path.home() / ".local" / "share" / "migready"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "migready"
    return Path.home() / ".config" / "migready"


# YAML key → (attribute, converter)
_FILE_KEYS = {
    "instance_url": ("instance_url", str),
    "access_token": ("access_token", str),
    "api_version": ("api_version", str),
    "http_timeout": ("http_timeout", float),
    "cascade_timeout": ("cascade_timeout", float),
    "limits_timeout": ("limits_timeout", float),
    "describe_concurrency": ("describe_concurrency", int),
    "max_pages": ("max_pages", int),
    "web_port": ("web_port", int),
}

_ENV_KEYS = {
    "MIGREADY_INSTANCE_URL": ("instance_url", str),
    "MIGREADY_ACCESS_TOKEN": ("access_token", str),
    "MIGREADY_API_VERSION": ("api_version", str),
    "MIGREADY_HTTP_TIMEOUT": ("http_timeout", float),
    "MIGREADY_CASCADE_TIMEOUT": ("cascade_timeout", float),
    "MIGREADY_WEB_PORT": ("web_port", int),
}


@dataclass
class MigReadyConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    instance_url: str = ""
    access_token: str = field(default="", repr=False)
    api_version: str = DEFAULT_API_VERSION
    http_timeout: float = 30.0
    cascade_timeout: float = 10.0
    limits_timeout: float = 5.0
    describe_concurrency: int = 5
    max_pages: int = 100
    web_host: str = "127.0.0.1"  # Hardcoded, never 0.0.0.0
    web_port: int = 8471
    verbose: bool = False

    @property
    def db_path(self) -> Path:
        return self.data_dir / "migready.db"

    @classmethod
    def load(cls, path: str | Path | None = None) -> MigReadyConfig:
        """Load config: defaults, then the YAML file, then environment variables."""
        config = cls()

        config_file = Path(path) if path else config.config_dir / "config.yaml"
        if config_file.is_file():
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config file {config_file} must be a mapping")
            for key, (attr, convert) in _FILE_KEYS.items():
                if data.get(key) is not None:
                    setattr(config, attr, convert(data[key]))

        for env_name, (attr, convert) in _ENV_KEYS.items():
            value = os.environ.get(env_name)
            if value:
                setattr(config, attr, convert(value))

        return config

    def credentials(self) -> Credentials:
        """Build transport credentials; both URL and token are required."""
        if not self.instance_url or not self.access_token:
            raise ValueError(
                "Instance URL and access token are required "
                "(set MIGREADY_INSTANCE_URL and MIGREADY_ACCESS_TOKEN)"
            )
        return Credentials(
            instance_url=self.instance_url.rstrip("/"),
            access_token=self.access_token,
            api_version=self.api_version,
        )
