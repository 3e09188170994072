"""Engine adapter contract and the shared normalization step."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Iterable, Protocol, Sequence, assert_never, runtime_checkable

from sqlglot import exp

from ..models import (
    ColumnDef,
    ConnectionDescriptor,
    ConnectionParams,
    ConnectionTestResult,
    Engine,
    MySQLNative,
    NativeResult,
    NormalizedResult,
    PostgresNative,
    Row,
    SQLiteNative,
    TableDef,
)

LOG = logging.getLogger(__name__)

DEFAULT_TEST_TIMEOUT = 5.0
PROBE_QUERY = "SELECT 1"
REDACTED = "********"

QueryParams = Sequence[Any] | None
Runner = Callable[[str, QueryParams], Awaitable[NormalizedResult]]
PasswordReveal = Callable[[str | None], str | None]


def plaintext(password: str | None) -> str | None:
    return password


@runtime_checkable
class EngineAdapter(Protocol):
    """Capabilities every engine implements: probe, open, execute, normalize, close."""

    engine: Engine
    database_scoped: bool

    async def test_connect(self, params: ConnectionParams) -> ConnectionTestResult:
        """Open a short-lived connection, run a liveness query, always release it."""

    async def open(self, params: ConnectionParams, reveal: PasswordReveal = plaintext) -> Any:
        """Return a long-lived, health-checked handle for the engine's concurrency model.

        `params.password` is passed through `reveal` only when the driver
        authenticates; the handle must not keep the plaintext.
        """

    async def execute(self, handle: Any, sql: str, params: QueryParams = None) -> NativeResult:
        """Run one statement with positional parameters."""

    def normalize(self, native: NativeResult) -> NormalizedResult:
        """Map the engine's native result onto the uniform tabular contract."""

    async def close(self, handle: Any) -> None:
        """Release every resource held by the handle; safe to call twice."""

    async def list_databases(self, run: Runner, descriptor: ConnectionDescriptor) -> list[str]: ...

    async def list_schemas(
        self, run: Runner, descriptor: ConnectionDescriptor, target_db: str | None = None
    ) -> list[str]: ...

    async def list_schema_tables(
        self,
        run: Runner,
        descriptor: ConnectionDescriptor,
        schema: str,
        target_db: str | None = None,
    ) -> list[TableDef]: ...


def normalize_native(native: NativeResult) -> NormalizedResult:
    """Convert any engine's native result into a `NormalizedResult`.

    Statements that produce a result set report `len(rows)`; everything else
    reports the engine's affected-row count.
    """

    match native:
        case PostgresNative(fields=fields, rows=rows, status=status):
            row_count = len(rows) if rows else status_row_count(status)
            return NormalizedResult(columns=fields, rows=rows, row_count=row_count)
        case MySQLNative(rows=rows, fields=fields, affected_rows=affected, returns_rows=returns_rows):
            row_count = len(rows) if returns_rows else max(affected, 0)
            return NormalizedResult(columns=fields, rows=rows, row_count=row_count)
        case SQLiteNative(rows=rows, description=description, changes=changes, returns_rows=returns_rows):
            columns = description if rows else ()
            row_count = len(rows) if returns_rows else max(changes, 0)
            return NormalizedResult(columns=columns, rows=rows, row_count=row_count)
        case _:
            assert_never(native)


def status_row_count(status: str | None) -> int:
    """Parse the trailing count of a Postgres command tag such as `UPDATE 3`."""

    if not status:
        return 0
    tail = status.rsplit(None, 1)[-1]
    return int(tail) if tail.isdigit() else 0


def rows_from_tuples(columns: Sequence[str], values: Iterable[Sequence[Any]]) -> tuple[Row, ...]:
    return tuple(dict(zip(columns, row)) for row in values)


def group_columns(rows: Iterable[Row]) -> list[TableDef]:
    """Fold `table_name/column_name/...` rows into ordered table definitions."""

    tables: dict[str, list[ColumnDef]] = {}
    for row in rows:
        table = str(row["table_name"])
        tables.setdefault(table, []).append(
            ColumnDef(
                name=str(row["column_name"]),
                type=str(row["data_type"]),
                nullable=str(row["is_nullable"]).upper() == "YES",
                default=None if row.get("column_default") is None else str(row["column_default"]),
            )
        )
    return [TableDef(table=name, columns=tuple(columns)) for name, columns in tables.items()]


def quote_identifier(name: str, dialect: str) -> str:
    return exp.to_identifier(name, quoted=True).sql(dialect=dialect)


def redact(message: str, secret: str | None) -> str:
    """Strip a plaintext secret from a driver message before it leaves the adapter."""

    if secret and secret in message:
        return message.replace(secret, REDACTED)
    return message


class AdapterBase:
    """Shared plumbing for the concrete adapters."""

    engine: Engine
    database_scoped = False

    def __init__(self, *, test_timeout: float = DEFAULT_TEST_TIMEOUT) -> None:
        self._test_timeout = test_timeout

    def normalize(self, native: NativeResult) -> NormalizedResult:
        return normalize_native(native)

    async def _run_probe(
        self,
        probe: Coroutine[Any, Any, None],
        params: ConnectionParams,
    ) -> ConnectionTestResult:
        try:
            await asyncio.wait_for(probe, timeout=self._test_timeout)
        except (asyncio.TimeoutError, TimeoutError):
            error = f"Connection attempt timed out after {self._test_timeout:g}s"
        except Exception as exc:
            error = redact(str(exc), params.password) or type(exc).__name__
        else:
            return ConnectionTestResult(success=True)
        LOG.info(
            "Connection test failed",
            extra={"engine": self.engine.value, "host": params.host, "database": params.database},
        )
        return ConnectionTestResult(success=False, error=error)


__all__ = [
    "AdapterBase",
    "DEFAULT_TEST_TIMEOUT",
    "EngineAdapter",
    "PROBE_QUERY",
    "PasswordReveal",
    "QueryParams",
    "Runner",
    "group_columns",
    "normalize_native",
    "plaintext",
    "quote_identifier",
    "redact",
    "rows_from_tuples",
    "status_row_count",
]
