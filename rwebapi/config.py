"""Application settings assembled from defaults, a TOML file and the environment."""

from __future__ import annotations

import copy
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

_U16_MAX = 0xFFFF
_U32_MAX = 0xFFFF_FFFF

PASSWORD = "password"

_DEFAULTS: dict[str, dict[str, Any]] = {
    "application": {
        "host": "127.0.0.1",
        "port": 8080,
        "environment": "development",
        "api_version": "v1",
    },
    "database": {
        "host": "localhost",
        "port": 5432,
        "name": "rust_api_db",
        "username": "postgres",
        "password": PASSWORD,
        "max_connections": 10,
        "min_connections": 5,
    },
}

# Each field maps to the upper limit of its integer range, or None for text.
_DATABASE_FIELDS: dict[str, int | None] = {
    "host": None,
    "port": _U16_MAX,
    "name": None,
    "username": None,
    "password": None,
    "max_connections": _U32_MAX,
    "min_connections": _U32_MAX,
}

_APPLICATION_FIELDS: dict[str, int | None] = {
    "host": None,
    "port": _U16_MAX,
    "environment": None,
    "api_version": None,
}

_DB_OVERRIDES = (
    ("DB_HOST", "host"),
    ("DB_PORT", "port"),
    ("DB_NAME", "name"),
    ("DB_USER", "username"),
    ("DB_PASSWORD", "password"),
)

_ENV_PREFIX = "app_"


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters for the PostgreSQL database."""

    host: str
    port: int
    name: str
    username: str
    password: str
    max_connections: int
    min_connections: int

    def get_url(self) -> str:
        """Return the connection URL for these settings."""
        return (
            f"postgres://{self.username}:{self.password}"
            f"@{self.host}:{self.port}/{self.name}"
        )


@dataclass(frozen=True)
class ApplicationSettings:
    """Where the HTTP server listens and what it reports about itself."""

    host: str
    port: int
    environment: str
    api_version: str


@dataclass(frozen=True)
class Settings:
    """All settings of the service."""

    database: DatabaseSettings
    application: ApplicationSettings

    def get_bind_address(self) -> str:
        """Return ``host:port`` for the HTTP server."""
        return f"{self.application.host}:{self.application.port}"


def _merge(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            _merge(current, value)
        elif isinstance(value, Mapping):
            target[key] = copy.deepcopy(dict(value))
        else:
            target[key] = value


def _set_path(tree: dict[str, Any], path: list[str], value: Any) -> None:
    *parents, leaf = path
    node = tree
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[leaf] = value


def _convert(path: str, value: Any, limit: int | None) -> Any:
    if limit is None:
        if isinstance(value, (dict, list)):
            raise ValueError(f"invalid value for {path}: expected a string")
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    if isinstance(value, bool):
        raise ValueError(f"invalid value for {path}: expected an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and value.isascii() and value.isdigit():
        number = int(value)
    else:
        raise ValueError(f"invalid value for {path}: {value!r} is not an integer")
    if not 0 <= number <= limit:
        raise ValueError(f"invalid value for {path}: {number} is out of range")
    return number


def _section(
    tree: dict[str, Any], name: str, fields: dict[str, int | None]
) -> dict[str, Any]:
    section = tree.get(name)
    if not isinstance(section, dict):
        raise ValueError(f"invalid value for {name}: expected a table")
    values = {}
    for field, limit in fields.items():
        if field not in section:
            raise ValueError(f"missing field {name}.{field}")
        values[field] = _convert(f"{name}.{field}", section[field], limit)
    return values


def load_settings(
    environ: Mapping[str, str] | None = None,
    base_dir: str | os.PathLike[str] | None = None,
) -> Settings:
    """Build settings from defaults, ``config/<ENVIRONMENT>.toml`` and variables.

    Later sources win: defaults, then the file, then ``APP_*`` variables,
    then the ``DB_*`` variables. Raises ``ValueError`` on a malformed value.
    """
    env = os.environ if environ is None else environ
    base = Path.cwd() if base_dir is None else Path(base_dir)
    environment = env.get("ENVIRONMENT", "development")

    tree = copy.deepcopy(_DEFAULTS)

    config_file = base / "config" / f"{environment}.toml"
    if config_file.exists():
        with config_file.open("rb") as handle:
            _merge(tree, tomllib.load(handle))

    for key, value in env.items():
        lowered = key.lower()
        if lowered.startswith(_ENV_PREFIX) and len(lowered) > len(_ENV_PREFIX):
            _set_path(tree, lowered[len(_ENV_PREFIX):].split("_"), value)

    for variable, field in _DB_OVERRIDES:
        if variable in env:
            _set_path(tree, ["database", field], env[variable])

    return Settings(
        database=DatabaseSettings(**_section(tree, "database", _DATABASE_FIELDS)),
        application=ApplicationSettings(
            **_section(tree, "application", _APPLICATION_FIELDS)
        ),
    )