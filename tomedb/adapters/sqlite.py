"""SQLite adapter using the embedded sqlite3 module."""

from __future__ import annotations

import asyncio
import logging
import sqlite3

from ..errors import ConnectionBackendError, QueryExecutionError
from ..models import ColumnDef, ConnectionDescriptor, ConnectionParams, ConnectionTestResult, Engine, SQLiteNative, TableDef
from .base import (
    PROBE_QUERY,
    AdapterBase,
    PasswordReveal,
    QueryParams,
    Runner,
    plaintext,
    quote_identifier,
    rows_from_tuples,
)

LOG = logging.getLogger(__name__)

MAIN_SCHEMA = "main"


class SQLiteAdapter(AdapterBase):
    """Synchronous embedded handle.

    Statements execute on the calling thread, which serializes every query
    against the same handle without extra locking.
    """

    engine = Engine.SQLITE

    _TABLES_QUERY = """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
        ORDER BY name
    """

    async def test_connect(self, params: ConnectionParams) -> ConnectionTestResult:
        return await self._run_probe(asyncio.to_thread(self._probe, params), params)

    async def open(self, params: ConnectionParams, reveal: PasswordReveal = plaintext) -> sqlite3.Connection:
        path = self._database_path(params)
        connection: sqlite3.Connection | None = None
        try:
            connection = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            connection.execute(PROBE_QUERY).fetchall()
        except sqlite3.Error as exc:
            if connection is not None:
                connection.close()
            raise ConnectionBackendError(str(exc), engine=self.engine.value) from exc
        LOG.info("Opened SQLite database", extra={"database": path})
        return connection

    async def execute(self, handle: sqlite3.Connection, sql: str, params: QueryParams = None) -> SQLiteNative:
        try:
            cursor = handle.execute(sql, tuple(params or ()))
            try:
                if cursor.description is None:
                    return SQLiteNative(rows=(), description=(), changes=cursor.rowcount, returns_rows=False)
                description = tuple(str(column[0]) for column in cursor.description)
                rows = rows_from_tuples(description, cursor.fetchall())
            finally:
                cursor.close()
        except sqlite3.Error as exc:
            raise QueryExecutionError(str(exc), engine=self.engine.value) from exc
        return SQLiteNative(rows=rows, description=description, changes=-1, returns_rows=True)

    async def close(self, handle: sqlite3.Connection) -> None:
        # sqlite3 treats closing a closed connection as a no-op.
        handle.close()

    async def list_databases(self, run: Runner, descriptor: ConnectionDescriptor) -> list[str]:
        # One file is one database.
        return [descriptor.params.database or ""]

    async def list_schemas(
        self, run: Runner, descriptor: ConnectionDescriptor, target_db: str | None = None
    ) -> list[str]:
        return [MAIN_SCHEMA]

    async def list_schema_tables(
        self,
        run: Runner,
        descriptor: ConnectionDescriptor,
        schema: str,
        target_db: str | None = None,
    ) -> list[TableDef]:
        if target_db and target_db != descriptor.params.database:
            raise QueryExecutionError(
                "SQLite connection is tied to the file on disk; open a new file to inspect it.",
                engine=self.engine.value,
            )
        if schema and schema != MAIN_SCHEMA:
            raise QueryExecutionError(
                f"SQLite only exposes the default '{MAIN_SCHEMA}' schema.",
                engine=self.engine.value,
            )
        tables = await run(self._TABLES_QUERY, None)
        definitions: list[TableDef] = []
        for row in tables.rows:
            name = str(row["name"])
            info = await run(f"PRAGMA table_info({quote_identifier(name, 'sqlite')})", None)
            definitions.append(
                TableDef(
                    table=name,
                    columns=tuple(
                        ColumnDef(
                            name=str(column["name"]),
                            type=str(column["type"]),
                            nullable=column["notnull"] == 0,
                            default=column["dflt_value"],
                        )
                        for column in info.rows
                    ),
                )
            )
        return definitions

    def _probe(self, params: ConnectionParams) -> None:
        connection = sqlite3.connect(self._database_path(params), timeout=self._test_timeout)
        try:
            connection.execute(PROBE_QUERY).fetchall()
        finally:
            connection.close()

    @staticmethod
    def _database_path(params: ConnectionParams) -> str:
        if not params.database:
            raise ConnectionBackendError("SQLite requires a database file path", engine=Engine.SQLITE.value)
        return params.database


__all__ = ["MAIN_SCHEMA", "SQLiteAdapter"]
