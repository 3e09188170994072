"""MySQL adapter: one pymysql session per handle, queries queued behind a lock."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import pymysql

from ..errors import ConnectionBackendError, QueryExecutionError
from ..models import ConnectionDescriptor, ConnectionParams, ConnectionTestResult, Engine, MySQLNative, TableDef
from .base import (
    PROBE_QUERY,
    AdapterBase,
    PasswordReveal,
    QueryParams,
    Runner,
    group_columns,
    plaintext,
    redact,
    rows_from_tuples,
)

LOG = logging.getLogger(__name__)

DEFAULT_PORT = 3306


@dataclass(slots=True)
class MySQLSession:
    """A single serialized MySQL session.

    pymysql connections are not safe for concurrent use, so every statement
    takes `lock` and runs in a worker thread; callers queue in arrival order.
    """

    connection: pymysql.connections.Connection
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    closed: bool = False


class MySQLAdapter(AdapterBase):
    """Adapter for MySQL and MariaDB servers."""

    engine = Engine.MYSQL

    _COLUMNS_QUERY = """
        SELECT TABLE_NAME AS table_name,
               COLUMN_NAME AS column_name,
               DATA_TYPE AS data_type,
               IS_NULLABLE AS is_nullable,
               COLUMN_DEFAULT AS column_default
        FROM information_schema.columns
        WHERE table_schema = %s
        ORDER BY TABLE_NAME, ORDINAL_POSITION
    """

    async def test_connect(self, params: ConnectionParams) -> ConnectionTestResult:
        return await self._run_probe(asyncio.to_thread(self._probe, params), params)

    async def open(self, params: ConnectionParams, reveal: PasswordReveal = plaintext) -> MySQLSession:
        password = reveal(params.password)
        connection: pymysql.connections.Connection | None = None
        try:
            connection = await asyncio.to_thread(pymysql.connect, **self._connect_kwargs(params.with_password(password)))
            await asyncio.to_thread(connection.ping, reconnect=False)
        except Exception as exc:
            if connection is not None:
                _close_quietly(connection)
            raise ConnectionBackendError(redact(str(exc), password), engine=self.engine.value) from exc
        except BaseException:
            if connection is not None:
                _close_quietly(connection)
            raise
        # Handles never keep the plaintext; sessions do not reconnect.
        connection.password = b""
        LOG.info("Opened MySQL session", extra={"host": params.host, "database": params.database})
        return MySQLSession(connection=connection)

    async def execute(self, handle: MySQLSession, sql: str, params: QueryParams = None) -> MySQLNative:
        async with handle.lock:
            if handle.closed:
                raise QueryExecutionError("MySQL session is closed", engine=self.engine.value)
            try:
                return await asyncio.to_thread(_execute_blocking, handle.connection, sql, params)
            except pymysql.err.Error as exc:
                raise QueryExecutionError(str(exc), engine=self.engine.value) from exc

    async def close(self, handle: MySQLSession) -> None:
        async with handle.lock:
            if handle.closed:
                return
            handle.closed = True
            await asyncio.to_thread(_close_quietly, handle.connection)
        LOG.info("Closed MySQL session")

    async def list_databases(self, run: Runner, descriptor: ConnectionDescriptor) -> list[str]:
        result = await run("SHOW DATABASES", None)
        return [str(row["Database"]) for row in result.rows]

    async def list_schemas(
        self, run: Runner, descriptor: ConnectionDescriptor, target_db: str | None = None
    ) -> list[str]:
        # A MySQL schema is a database.
        return [target_db or descriptor.params.database or ""]

    async def list_schema_tables(
        self,
        run: Runner,
        descriptor: ConnectionDescriptor,
        schema: str,
        target_db: str | None = None,
    ) -> list[TableDef]:
        schema_name = target_db or descriptor.params.database or ""
        if schema and schema != schema_name:
            raise QueryExecutionError(
                f"MySQL: target schema should match the database name ('{schema_name}'), got '{schema}'.",
                engine=self.engine.value,
            )
        result = await run(self._COLUMNS_QUERY, [schema_name])
        return group_columns(result.rows)

    def _probe(self, params: ConnectionParams) -> None:
        connection = pymysql.connect(connect_timeout=self._test_timeout, **self._connect_kwargs(params))
        try:
            with connection.cursor() as cursor:
                cursor.execute(PROBE_QUERY)
                cursor.fetchall()
        finally:
            _close_quietly(connection)

    def _connect_kwargs(self, params: ConnectionParams) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "host": params.host or "localhost",
            "port": params.port or DEFAULT_PORT,
            "charset": params.options.get("charset", "utf8mb4"),
            "autocommit": True,
        }
        if params.user:
            kwargs["user"] = params.user
        if params.password:
            kwargs["password"] = params.password
        if params.database:
            kwargs["database"] = params.database
        if params.ssl:
            kwargs["ssl"] = {"check_hostname": False}
        return kwargs


def _execute_blocking(
    connection: pymysql.connections.Connection,
    sql: str,
    params: QueryParams,
) -> MySQLNative:
    with connection.cursor() as cursor:
        affected = cursor.execute(sql, tuple(params) if params else None)
        if cursor.description is None:
            return MySQLNative(rows=(), fields=(), affected_rows=affected, returns_rows=False)
        fields = tuple(str(column[0]) for column in cursor.description)
        rows = rows_from_tuples(fields, cursor.fetchall())
        return MySQLNative(rows=rows, fields=fields, affected_rows=affected, returns_rows=True)


def _close_quietly(connection: pymysql.connections.Connection) -> None:
    try:
        connection.close()
    except pymysql.err.Error:
        LOG.debug("MySQL connection was already closed")


__all__ = ["MySQLAdapter", "MySQLSession"]
