"""PostgreSQL adapter backed by an asyncpg connection pool."""

from __future__ import annotations

import functools
import logging
from typing import Any

import asyncpg

from ..errors import ConnectionBackendError, QueryExecutionError
from ..models import ConnectionDescriptor, ConnectionParams, ConnectionTestResult, Engine, PostgresNative, TableDef
from .base import PROBE_QUERY, AdapterBase, PasswordReveal, QueryParams, Runner, group_columns, plaintext, redact

LOG = logging.getLogger(__name__)

DEFAULT_PORT = 5432


class PostgresAdapter(AdapterBase):
    """Pooled handle; queries on one handle run in parallel across pool sockets."""

    engine = Engine.POSTGRES
    database_scoped = True

    _DATABASES_QUERY = """
        SELECT datname
        FROM pg_database
        WHERE datistemplate = FALSE AND datallowconn = TRUE
        ORDER BY datname
    """

    _SCHEMA_QUERY = """
        SELECT schema_name
        FROM information_schema.schemata
        WHERE schema_name NOT IN ('pg_catalog', 'information_schema', 'pg_toast')
        ORDER BY schema_name
    """

    _COLUMNS_QUERY = """
        SELECT table_name, column_name, data_type, is_nullable, column_default
        FROM information_schema.columns
        WHERE table_schema = $1
        ORDER BY table_name, ordinal_position
    """

    def __init__(self, *, pool_min_size: int = 1, pool_max_size: int = 10, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._pool_min_size = pool_min_size
        self._pool_max_size = pool_max_size

    async def test_connect(self, params: ConnectionParams) -> ConnectionTestResult:
        return await self._run_probe(self._probe(params), params)

    async def open(self, params: ConnectionParams, reveal: PasswordReveal = plaintext) -> asyncpg.Pool:
        kwargs = self._connect_kwargs(params.with_password(None))
        if params.password:
            # asyncpg calls this for every new pool connection.
            kwargs["password"] = functools.partial(reveal, params.password)
        pool: asyncpg.Pool | None = None
        try:
            pool = await asyncpg.create_pool(min_size=self._pool_min_size, max_size=self._pool_max_size, **kwargs)
            await pool.fetchval(PROBE_QUERY)
        except Exception as exc:
            if pool is not None:
                pool.terminate()
            message = redact(str(exc), reveal(params.password)) if params.password else str(exc)
            raise ConnectionBackendError(message, engine=self.engine.value) from exc
        except BaseException:
            if pool is not None:
                pool.terminate()
            raise
        LOG.info("Opened Postgres pool", extra={"host": params.host, "database": params.database})
        return pool

    async def execute(self, handle: asyncpg.Pool, sql: str, params: QueryParams = None) -> PostgresNative:
        args = tuple(params or ())
        try:
            async with handle.acquire() as conn:
                try:
                    statement = await conn.prepare(sql)
                except asyncpg.exceptions.PostgresSyntaxError as exc:
                    if args or "multiple commands" not in str(exc):
                        raise
                    # Scripts cannot be prepared; run them through the simple protocol.
                    status = await conn.execute(sql)
                    return PostgresNative(fields=(), rows=(), status=status)
                records = await statement.fetch(*args)
                fields = tuple(attribute.name for attribute in statement.get_attributes())
                status = statement.get_statusmsg()
        except Exception as exc:
            raise QueryExecutionError(str(exc), engine=self.engine.value) from exc
        return PostgresNative(fields=fields, rows=tuple(dict(record.items()) for record in records), status=status)

    async def close(self, handle: asyncpg.Pool) -> None:
        if handle.is_closing():
            return
        await handle.close()
        LOG.info("Closed Postgres pool")

    async def list_databases(self, run: Runner, descriptor: ConnectionDescriptor) -> list[str]:
        result = await run(self._DATABASES_QUERY, None)
        return [str(row["datname"]) for row in result.rows]

    async def list_schemas(
        self, run: Runner, descriptor: ConnectionDescriptor, target_db: str | None = None
    ) -> list[str]:
        result = await run(self._SCHEMA_QUERY, None)
        return [str(row["schema_name"]) for row in result.rows]

    async def list_schema_tables(
        self,
        run: Runner,
        descriptor: ConnectionDescriptor,
        schema: str,
        target_db: str | None = None,
    ) -> list[TableDef]:
        result = await run(self._COLUMNS_QUERY, [schema])
        return group_columns(result.rows)

    async def _probe(self, params: ConnectionParams) -> None:
        conn = await asyncpg.connect(timeout=self._test_timeout, **self._connect_kwargs(params))
        try:
            await conn.fetchval(PROBE_QUERY)
        finally:
            try:
                await conn.close()
            except Exception:  # pragma: no cover - best effort
                LOG.debug("Ignoring error while closing Postgres probe connection")

    def _connect_kwargs(self, params: ConnectionParams) -> dict[str, object]:
        kwargs: dict[str, object] = {}
        dsn = params.options.get("dsn")
        if dsn:
            kwargs["dsn"] = dsn
        else:
            kwargs["host"] = params.host or "localhost"
            kwargs["port"] = params.port or DEFAULT_PORT
            if params.user:
                kwargs["user"] = params.user
            if params.database:
                kwargs["database"] = params.database
        if params.password:
            kwargs["password"] = params.password
        if params.ssl:
            kwargs["ssl"] = "require"
        return kwargs


__all__ = ["PostgresAdapter"]
