"""
Configuration management for Playlister.

This module loads database and web settings from TOML files. One table per
environment (development/test/production) names the SQLite file; the
`[defaults]` table supplies fallbacks and the default environment.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent

ENV_VAR = "PLAYLISTER_ENV"
DEFAULT_ENVIRONMENT = "development"


class ConfigError(ValueError):
    """Raised when the configuration file does not describe the environment."""


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Resolved settings for one environment."""

    environment: str
    database: str
    schema_dump: Path | None = None

    @property
    def in_memory(self) -> bool:
        return self.database == ":memory:"


@dataclass(frozen=True, slots=True)
class WebConfig:
    host: str = "127.0.0.1"
    port: int = 9292


def _read_toml(config_path: Path | None) -> dict[str, Any]:
    if config_path is None:
        config_path = CONFIG_DIR / "database.toml"

    logger.debug("Loading config from %s", config_path)

    with config_path.open("rb") as f:
        return tomllib.load(f)


def resolve_environment(environment: str | None = None, data: dict[str, Any] | None = None) -> str:
    """Explicit argument, then PLAYLISTER_ENV, then `[defaults].environment`."""
    if environment:
        return environment
    from_env = os.environ.get(ENV_VAR)
    if from_env:
        return from_env
    defaults = (data or {}).get("defaults", {})
    return str(defaults.get("environment", DEFAULT_ENVIRONMENT))


def load_database_config(
    environment: str | None = None,
    config_path: Path | None = None,
) -> DatabaseConfig:
    """
    Load the database settings for an environment.

    Args:
        environment: Environment name. If None, uses PLAYLISTER_ENV or the default.
        config_path: Path to database.toml. If None, uses default location.

    Returns:
        Loaded DatabaseConfig instance.
    """
    data = _read_toml(config_path)
    env = resolve_environment(environment, data)

    section = data.get(env)
    if not isinstance(section, dict) or env in ("defaults", "web"):
        raise ConfigError(f"No database configuration for environment {env!r}")

    defaults = data.get("defaults", {})
    database = section.get("database")
    if not database:
        raise ConfigError(f"Environment {env!r} does not set 'database'")

    # An empty string disables the dump for that environment.
    dump = section.get("schema_dump", defaults.get("schema_dump", ""))

    return DatabaseConfig(
        environment=env,
        database=str(database),
        schema_dump=Path(dump) if dump else None,
    )


def load_web_config(config_path: Path | None = None) -> WebConfig:
    data = _read_toml(config_path).get("web", {})
    return WebConfig(
        host=str(data.get("host", "127.0.0.1")),
        port=int(data.get("port", 9292)),
    )
