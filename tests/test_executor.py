"""Tests for the query executor using real SQLite databases."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from tomedb.adapters import AdapterSet
from tomedb.adapters.sqlite import SQLiteAdapter
from tomedb.errors import QueryExecutionError, UnsupportedEngineError
from tomedb.executor import QueryExecutor
from tomedb.models import ConnectionDescriptor, ConnectionParams, Engine
from tomedb.registry import ConnectionRegistry
from tomedb.vault import CredentialVault


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault.generate()


@pytest.fixture
def executor(vault: CredentialVault) -> QueryExecutor:
    adapters = AdapterSet({Engine.SQLITE: SQLiteAdapter()})
    return QueryExecutor(ConnectionRegistry(vault, adapters), vault, adapters)


@pytest.fixture
def descriptor(tmp_path: Path) -> ConnectionDescriptor:
    return ConnectionDescriptor(
        id=1,
        name="Local file",
        engine=Engine.SQLITE,
        params=ConnectionParams(database=str(tmp_path / "app.sqlite3")),
    )


@pytest.mark.anyio
async def test_run_select_literal(executor: QueryExecutor, descriptor: ConnectionDescriptor) -> None:
    result = await executor.run(descriptor, "SELECT 1 as x")

    assert result.to_dict() == {"columns": ["x"], "rows": [{"x": 1}], "rowCount": 1}
    assert result.elapsed_ms >= 0
    await executor.disconnect(descriptor)


@pytest.mark.anyio
async def test_run_connects_lazily_and_reuses_handle(executor: QueryExecutor, descriptor: ConnectionDescriptor) -> None:
    await executor.run(descriptor, "CREATE TABLE accounts (id INTEGER PRIMARY KEY, email TEXT)")
    inserted = await executor.run(descriptor, "INSERT INTO accounts (email) VALUES (?), (?)", ["a", "b"])
    selected = await executor.run(descriptor, "SELECT email FROM accounts ORDER BY id")

    assert executor.list_active() == [descriptor]
    assert inserted.row_count == 2
    assert selected.row_count == len(selected.rows) == 2
    await executor.disconnect(descriptor)
    assert executor.list_active() == []


@pytest.mark.anyio
async def test_query_errors_keep_connection(executor: QueryExecutor, descriptor: ConnectionDescriptor) -> None:
    with pytest.raises(QueryExecutionError):
        await executor.run(descriptor, "SELECT * FROM missing")

    assert executor.list_active() == [descriptor]
    result = await executor.run(descriptor, "SELECT 2 AS y")
    assert result.rows == ({"y": 2},)
    await executor.disconnect(descriptor)


@pytest.mark.anyio
async def test_unsupported_engine_fails_loudly(executor: QueryExecutor) -> None:
    descriptor = ConnectionDescriptor(id=2, name="pg", engine=Engine.POSTGRES)

    with pytest.raises(UnsupportedEngineError):
        await executor.run(descriptor, "SELECT 1")
    with pytest.raises(UnsupportedEngineError):
        await executor.test_connection(descriptor)


@pytest.mark.anyio
async def test_test_connection_never_registers(executor: QueryExecutor, descriptor: ConnectionDescriptor) -> None:
    for _ in range(5):
        result = await executor.test_connection(descriptor)
        assert result.success is True

    assert executor.list_active() == []


@pytest.mark.anyio
async def test_failed_test_connection_never_registers(executor: QueryExecutor, tmp_path: Path) -> None:
    unreachable = ConnectionDescriptor(
        id=4,
        name="Missing directory",
        engine=Engine.SQLITE,
        params=ConnectionParams(database=str(tmp_path / "absent" / "app.sqlite3")),
    )

    for _ in range(5):
        result = await executor.test_connection(unreachable)
        assert result.success is False
        assert result.error

    assert executor.list_active() == []


@pytest.mark.anyio
async def test_test_connection_reports_decryption_failure(
    executor: QueryExecutor, descriptor: ConnectionDescriptor
) -> None:
    foreign = CredentialVault.generate().protect("secret")
    broken = descriptor.with_params(descriptor.params.with_password(foreign))

    result = await executor.test_connection(broken)

    assert result.success is False
    assert "decrypt" in result.error
    assert executor.list_active() == []


@pytest.mark.anyio
async def test_run_detached_does_not_register(executor: QueryExecutor, descriptor: ConnectionDescriptor) -> None:
    await executor.run_detached(descriptor, "CREATE TABLE t (id INTEGER)")
    result = await executor.run_detached(descriptor, "SELECT name FROM sqlite_master WHERE type = 'table'")

    assert result.rows == ({"name": "t"},)
    assert executor.list_active() == []


@pytest.mark.anyio
async def test_postgres_bad_password_probe(monkeypatch: pytest.MonkeyPatch, vault: CredentialVault) -> None:
    seen: dict[str, Any] = {}

    async def _connect(**kwargs: Any) -> None:
        seen.update(kwargs)
        raise RuntimeError('password authentication failed for user "admin"')

    monkeypatch.setattr("tomedb.adapters.postgres.asyncpg.connect", _connect)
    adapters = AdapterSet.default(test_timeout=1.0)
    executor = QueryExecutor(ConnectionRegistry(vault, adapters), vault, adapters)
    descriptor = ConnectionDescriptor(
        id=3,
        name="Warehouse",
        engine=Engine.POSTGRES,
        params=ConnectionParams(host="pg", database="app", user="admin", password=vault.protect("wrong")),
    )

    result = await executor.test_connection(descriptor)

    assert result.to_dict() == {"success": False, "error": 'password authentication failed for user "admin"'}
    assert seen["password"] == "wrong"
    assert seen["timeout"] == 1.0
    assert executor.list_active() == []
