"""App configuration loading helpers."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import tomllib

from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from .errors import UnsupportedEngineError
from .models import ConnectionDescriptor, ConnectionParams, ConnectionSettings, Engine

LOG = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "tomedb"
CONFIG_FILE = CONFIG_DIR / "config.toml"


class CoreSettings(BaseModel):
    """Tunables for the connection layer."""

    test_timeout: float = 5.0
    pool_min_size: int = 1
    pool_max_size: int = 10
    key_file: Path = Field(default_factory=lambda: CONFIG_DIR / "secret.key")


class ConnectionRecordConfig(BaseModel):
    """Connection record stored in config.toml; `password` keeps its `enc:` form."""

    id: int
    name: str
    engine: str
    description: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    user: str | None = None
    password: str | None = Field(default=None, repr=False)
    ssl: bool = False
    options: dict[str, str] = Field(default_factory=dict)
    auto_update_semantic_index: bool = False

    def to_descriptor(self) -> ConnectionDescriptor:
        return ConnectionDescriptor(
            id=self.id,
            name=self.name,
            engine=Engine.parse(self.engine),
            description=self.description,
            params=ConnectionParams(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                ssl=self.ssl,
                options=dict(self.options),
            ),
            settings=ConnectionSettings(auto_update_semantic_index=self.auto_update_semantic_index),
        )

    @classmethod
    def from_descriptor(cls, descriptor: ConnectionDescriptor) -> "ConnectionRecordConfig":
        params = descriptor.params
        return cls(
            id=descriptor.id,
            name=descriptor.name,
            engine=descriptor.engine.value,
            description=descriptor.description,
            host=params.host,
            port=params.port,
            database=params.database,
            user=params.user,
            password=params.password,
            ssl=params.ssl,
            options={str(key): str(value) for key, value in params.options.items()},
            auto_update_semantic_index=descriptor.settings.auto_update_semantic_index,
        )


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    core: CoreSettings = Field(default_factory=CoreSettings)
    connections: list[ConnectionRecordConfig] = Field(default_factory=list)

    def descriptors(self) -> list[ConnectionDescriptor]:
        """Runtime descriptors for every stored record."""

        return [record.to_descriptor() for record in self.connections]

    def with_connections(self, records: list[ConnectionRecordConfig]) -> AppConfig:
        """Return a copy with the connection records replaced."""

        return self.model_copy(update={"connections": list(records)})

    def with_core(self, **updates: object) -> AppConfig:
        """Return a copy with core setting changes applied."""

        core = self.core.model_copy(update=updates)
        return self.model_copy(update={"core": core})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        LOG.warning("Ignoring unreadable config file", extra={"path": str(CONFIG_FILE)}, exc_info=True)
        return AppConfig()

    core_data = data.get("core")
    try:
        core = CoreSettings(**core_data) if isinstance(core_data, dict) else CoreSettings()
    except ValidationError:
        LOG.warning("Ignoring invalid [core] settings", extra={"path": str(CONFIG_FILE)})
        core = CoreSettings()

    records: list[ConnectionRecordConfig] = []
    connections_data = data.get("connections")
    if isinstance(connections_data, list):
        for entry in connections_data:
            try:
                record = ConnectionRecordConfig(**entry)
                Engine.parse(record.engine)
            except (ValidationError, UnsupportedEngineError):
                LOG.warning("Skipping invalid connection record", extra={"record": entry.get("name")})
                continue
            records.append(record)

    return AppConfig(core=core, connections=records)


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    core = config.core
    lines: list[str] = [
        "[core]",
        f"test_timeout = {core.test_timeout}",
        f"pool_min_size = {core.pool_min_size}",
        f"pool_max_size = {core.pool_max_size}",
        f"key_file = {_toml_string(str(core.key_file))}",
    ]
    for record in config.connections:
        lines.append("")
        lines.append("[[connections]]")
        lines.append(f"id = {record.id}")
        lines.append(f"name = {_toml_string(record.name)}")
        lines.append(f"engine = {_toml_string(record.engine)}")
        if record.description:
            lines.append(f"description = {_toml_string(record.description)}")
        if record.host:
            lines.append(f"host = {_toml_string(record.host)}")
        if record.port is not None:
            lines.append(f"port = {record.port}")
        if record.database:
            lines.append(f"database = {_toml_string(record.database)}")
        if record.user:
            lines.append(f"user = {_toml_string(record.user)}")
        if record.password:
            lines.append(f"password = {_toml_string(record.password)}")
        lines.append(f"ssl = {str(record.ssl).lower()}")
        lines.append(f"auto_update_semantic_index = {str(record.auto_update_semantic_index).lower()}")
        if record.options:
            lines.append("")
            lines.append("[connections.options]")
            for key in sorted(record.options):
                lines.append(f"{_toml_string(key)} = {_toml_string(record.options[key])}")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    core = raw.get("core")
    if isinstance(core, dict):
        parsed_core: dict[str, object] = {}
        for key in ("test_timeout", "pool_min_size", "pool_max_size", "key_file"):
            if key in core:
                parsed_core[key] = core[key]
        data["core"] = parsed_core
    connections = raw.get("connections")
    if isinstance(connections, list):
        parsed_connections: list[dict[str, Any]] = []
        for connection in connections:
            if not isinstance(connection, dict):
                continue
            parsed: dict[str, Any] = {}
            for key in ("name", "engine", "description", "host", "database", "user", "password"):
                value = connection.get(key)
                if isinstance(value, str):
                    parsed[key] = value
            for key in ("id", "port"):
                value = connection.get(key)
                if isinstance(value, int) and not isinstance(value, bool):
                    parsed[key] = value
            for key in ("ssl", "auto_update_semantic_index"):
                value = connection.get(key)
                if isinstance(value, bool):
                    parsed[key] = value
            options = connection.get("options")
            if isinstance(options, Mapping):
                parsed["options"] = {str(key): str(value) for key, value in options.items()}
            if parsed.get("name"):
                parsed_connections.append(parsed)
        data["connections"] = parsed_connections
    return data


def _toml_string(value: str) -> str:
    # JSON string escapes are a subset of TOML basic-string escapes.
    return json.dumps(value, ensure_ascii=False)


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConnectionRecordConfig",
    "CoreSettings",
    "load_config",
    "save_config",
]
