"""Shared dataclasses used across the vault, adapters, registry and executor."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

from .errors import UnsupportedEngineError

Row = dict[str, Any]


class Engine(str, Enum):
    """Database engines with a registered adapter."""

    POSTGRES = "Postgres"
    MYSQL = "MySQL"
    SQLITE = "SQLite"

    @classmethod
    def parse(cls, value: "Engine | str") -> "Engine":
        """Return the enum member for a persisted engine name."""

        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value.lower() == str(value).lower():
                return member
        raise UnsupportedEngineError(value)


@dataclass(frozen=True, slots=True)
class ConnectionParams:
    """Engine-specific connection settings; `database` is the file path for SQLite."""

    host: str | None = None
    port: int | None = None
    database: str | None = None
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    ssl: bool = False
    options: Mapping[str, Any] = field(default_factory=dict)

    def with_password(self, password: str | None) -> "ConnectionParams":
        return replace(self, password=password)

    def with_database(self, database: str | None) -> "ConnectionParams":
        return replace(self, database=database)


@dataclass(frozen=True, slots=True)
class ConnectionSettings:
    """Per-connection behaviour flags persisted alongside the descriptor."""

    auto_update_semantic_index: bool = False


@dataclass(frozen=True, slots=True)
class ConnectionDescriptor:
    """Static record identifying how to reach a database."""

    id: int
    name: str
    engine: Engine
    params: ConnectionParams = field(default_factory=ConnectionParams)
    description: str | None = None
    settings: ConnectionSettings = field(default_factory=ConnectionSettings)

    def with_params(self, params: ConnectionParams) -> "ConnectionDescriptor":
        return replace(self, params=params)


@dataclass(frozen=True, slots=True)
class PostgresNative:
    """asyncpg output: field descriptors, records and the command status tag."""

    fields: tuple[str, ...]
    rows: tuple[Row, ...]
    status: str | None


@dataclass(frozen=True, slots=True)
class MySQLNative:
    """pymysql output: result rows, field metadata and the affected-row count."""

    rows: tuple[Row, ...]
    fields: tuple[str, ...]
    affected_rows: int
    returns_rows: bool


@dataclass(frozen=True, slots=True)
class SQLiteNative:
    """sqlite3 output: plain row mappings plus the cursor's column order."""

    rows: tuple[Row, ...]
    description: tuple[str, ...]
    changes: int
    returns_rows: bool


NativeResult = PostgresNative | MySQLNative | SQLiteNative


@dataclass(frozen=True, slots=True)
class NormalizedResult:
    """Uniform tabular result consumed by tables, exporters and AI tools."""

    columns: tuple[str, ...]
    rows: tuple[Row, ...]
    row_count: int
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": list(self.columns),
            "rows": [dict(row) for row in self.rows],
            "rowCount": self.row_count,
        }


@dataclass(frozen=True, slots=True)
class ConnectionTestResult:
    """Outcome of a non-throwing connection probe."""

    success: bool
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "error": self.error}


@dataclass(frozen=True, slots=True)
class ColumnDef:
    name: str
    type: str
    nullable: bool
    default: str | None = None


@dataclass(frozen=True, slots=True)
class TableDef:
    table: str
    columns: tuple[ColumnDef, ...] = ()


@dataclass(frozen=True, slots=True)
class SchemaInfo:
    name: str
    tables: tuple[TableDef, ...] = ()


@dataclass(frozen=True, slots=True)
class DatabaseSchema:
    """Full database layout used to ground AI query generation."""

    database: str
    schemas: tuple[SchemaInfo, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = [
    "ColumnDef",
    "ConnectionDescriptor",
    "ConnectionParams",
    "ConnectionSettings",
    "ConnectionTestResult",
    "DatabaseSchema",
    "Engine",
    "MySQLNative",
    "NativeResult",
    "NormalizedResult",
    "PostgresNative",
    "Row",
    "SQLiteNative",
    "SchemaInfo",
    "TableDef",
]
