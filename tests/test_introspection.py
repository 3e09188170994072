"""Tests for schema introspection."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest

from tomedb.adapters import AdapterSet
from tomedb.adapters.base import AdapterBase, PasswordReveal, QueryParams, Runner, group_columns, plaintext
from tomedb.adapters.sqlite import SQLiteAdapter
from tomedb.errors import QueryExecutionError, SchemaIntrospectionError
from tomedb.executor import QueryExecutor
from tomedb.introspection import SchemaInspector
from tomedb.models import ConnectionDescriptor, ConnectionParams, Engine, PostgresNative, TableDef
from tomedb.registry import ConnectionRegistry
from tomedb.vault import CredentialVault


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _ServerAdapter(AdapterBase):
    """Database-scoped fake whose handles remember the database they were opened on."""

    engine = Engine.POSTGRES
    database_scoped = True

    def __init__(self) -> None:
        super().__init__()
        self.opened_databases: list[str | None] = []
        self.closed = 0
        self.broken_schemas: set[str] = set()
        self.fail_schema_listing = False

    async def open(self, params: ConnectionParams, reveal: PasswordReveal = plaintext) -> str | None:
        self.opened_databases.append(params.database)
        return params.database

    async def execute(self, handle: str | None, sql: str, params: QueryParams = None) -> PostgresNative:
        if sql == "schemas":
            if self.fail_schema_listing:
                raise QueryExecutionError("permission denied for schema listing", engine="Postgres")
            return PostgresNative(
                fields=("schema_name",),
                rows=({"schema_name": "public"}, {"schema_name": f"{handle}_private"}),
                status="SELECT 2",
            )
        schema = (params or [""])[0]
        if schema in self.broken_schemas:
            raise QueryExecutionError(f"permission denied for schema {schema}", engine="Postgres")
        row = {
            "table_name": f"{handle}_{schema}_table",
            "column_name": "id",
            "data_type": "integer",
            "is_nullable": "NO",
            "column_default": None,
        }
        return PostgresNative(fields=tuple(row), rows=(row,), status="SELECT 1")

    async def close(self, handle: Any) -> None:
        self.closed += 1

    async def list_databases(self, run: Runner, descriptor: ConnectionDescriptor) -> list[str]:
        return ["app", "analytics"]

    async def list_schemas(
        self, run: Runner, descriptor: ConnectionDescriptor, target_db: str | None = None
    ) -> list[str]:
        result = await run("schemas", None)
        return [str(row["schema_name"]) for row in result.rows]

    async def list_schema_tables(
        self, run: Runner, descriptor: ConnectionDescriptor, schema: str, target_db: str | None = None
    ) -> list[TableDef]:
        result = await run("columns", [schema])
        return group_columns(result.rows)


def _build(adapter: AdapterBase, engine: Engine) -> tuple[SchemaInspector, QueryExecutor]:
    vault = CredentialVault.generate()
    adapters = AdapterSet({engine: adapter})  # type: ignore[dict-item]
    executor = QueryExecutor(ConnectionRegistry(vault, adapters), vault, adapters)
    return SchemaInspector(executor, adapters), executor


def _pg_descriptor() -> ConnectionDescriptor:
    return ConnectionDescriptor(
        id=7, name="warehouse", engine=Engine.POSTGRES, params=ConnectionParams(host="pg", database="app")
    )


@pytest.mark.anyio
async def test_full_schema_for_sqlite_file(tmp_path: Path) -> None:
    inspector, executor = _build(SQLiteAdapter(), Engine.SQLITE)
    descriptor = ConnectionDescriptor(
        id=1, name="local", engine=Engine.SQLITE, params=ConnectionParams(database=str(tmp_path / "app.db"))
    )
    await executor.run(descriptor, "CREATE TABLE accounts (id INTEGER PRIMARY KEY, email TEXT)")
    await executor.run(descriptor, "CREATE TABLE orders (id INTEGER PRIMARY KEY, total REAL NOT NULL)")

    schema = await inspector.get_full_schema(descriptor)

    assert schema.database == str(tmp_path / "app.db")
    assert [info.name for info in schema.schemas] == ["main"]
    assert [table.table for table in schema.schemas[0].tables] == ["accounts", "orders"]
    payload = schema.to_dict()
    assert payload["schemas"][0]["tables"][1]["columns"][1]["nullable"] is False
    await executor.disconnect(descriptor)


@pytest.mark.anyio
async def test_full_schema_uses_registry_for_own_database() -> None:
    adapter = _ServerAdapter()
    inspector, executor = _build(adapter, Engine.POSTGRES)
    descriptor = _pg_descriptor()

    schema = await inspector.get_full_schema(descriptor)

    assert schema.database == "app"
    assert [info.name for info in schema.schemas] == ["public", "app_private"]
    assert schema.schemas[0].tables[0].table == "app_public_table"
    assert adapter.opened_databases == ["app"]
    assert executor.list_active() == [descriptor]


@pytest.mark.anyio
async def test_other_database_runs_detached() -> None:
    adapter = _ServerAdapter()
    inspector, executor = _build(adapter, Engine.POSTGRES)

    schema = await inspector.get_full_schema(_pg_descriptor(), target_db="analytics")

    assert schema.database == "analytics"
    assert schema.schemas[1].name == "analytics_private"
    assert set(adapter.opened_databases) == {"analytics"}
    assert adapter.closed == len(adapter.opened_databases)
    assert executor.list_active() == []


@pytest.mark.anyio
async def test_failing_schema_is_reported_empty(caplog: pytest.LogCaptureFixture) -> None:
    adapter = _ServerAdapter()
    adapter.broken_schemas.add("public")
    inspector, _ = _build(adapter, Engine.POSTGRES)

    with caplog.at_level(logging.WARNING, logger="tomedb.introspection"):
        schema = await inspector.get_full_schema(_pg_descriptor())

    assert schema.schemas[0].name == "public"
    assert schema.schemas[0].tables == ()
    assert schema.schemas[1].tables
    assert any("Skipping schema" in record.getMessage() for record in caplog.records)


@pytest.mark.anyio
async def test_schema_listing_failure_raises() -> None:
    adapter = _ServerAdapter()
    adapter.fail_schema_listing = True
    inspector, _ = _build(adapter, Engine.POSTGRES)

    with pytest.raises(SchemaIntrospectionError, match="app"):
        await inspector.get_full_schema(_pg_descriptor())


@pytest.mark.anyio
async def test_list_databases_delegates_to_adapter() -> None:
    inspector, _ = _build(_ServerAdapter(), Engine.POSTGRES)

    assert await inspector.list_databases(_pg_descriptor()) == ["app", "analytics"]
