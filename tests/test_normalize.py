"""Tests for result normalization and shared adapter helpers."""

from __future__ import annotations

import pytest

from tomedb.adapters.base import group_columns, normalize_native, quote_identifier, redact, status_row_count
from tomedb.errors import UnsupportedEngineError
from tomedb.models import (
    ColumnDef,
    ConnectionTestResult,
    Engine,
    MySQLNative,
    NormalizedResult,
    PostgresNative,
    SQLiteNative,
)


def test_postgres_result_set_counts_rows() -> None:
    native = PostgresNative(fields=("id", "email"), rows=({"id": 1, "email": "a"}, {"id": 2, "email": "b"}), status="SELECT 2")

    result = normalize_native(native)

    assert result.columns == ("id", "email")
    assert result.row_count == 2 == len(result.rows)


def test_postgres_write_uses_command_tag() -> None:
    result = normalize_native(PostgresNative(fields=(), rows=(), status="UPDATE 3"))

    assert result.columns == ()
    assert result.rows == ()
    assert result.row_count == 3


def test_postgres_empty_select_keeps_columns() -> None:
    result = normalize_native(PostgresNative(fields=("id",), rows=(), status="SELECT 0"))

    assert result.columns == ("id",)
    assert result.row_count == 0


def test_mysql_result_set_counts_rows() -> None:
    native = MySQLNative(rows=({"n": 1},), fields=("n",), affected_rows=1, returns_rows=True)

    result = normalize_native(native)

    assert result.columns == ("n",)
    assert result.row_count == 1


def test_mysql_write_reports_affected_rows() -> None:
    result = normalize_native(MySQLNative(rows=(), fields=(), affected_rows=4, returns_rows=False))

    assert result.row_count == 4
    assert result.columns == ()


def test_mysql_negative_affected_rows_clamp_to_zero() -> None:
    result = normalize_native(MySQLNative(rows=(), fields=(), affected_rows=-1, returns_rows=False))

    assert result.row_count == 0


def test_sqlite_result_set_uses_description() -> None:
    native = SQLiteNative(rows=({"x": 1},), description=("x",), changes=-1, returns_rows=True)

    result = normalize_native(native)

    assert result.to_dict() == {"columns": ["x"], "rows": [{"x": 1}], "rowCount": 1}


def test_sqlite_empty_result_has_no_columns() -> None:
    native = SQLiteNative(rows=(), description=("x",), changes=-1, returns_rows=True)

    result = normalize_native(native)

    assert result.columns == ()
    assert result.row_count == 0


def test_sqlite_write_reports_changes() -> None:
    result = normalize_native(SQLiteNative(rows=(), description=(), changes=2, returns_rows=False))

    assert result.row_count == 2


@pytest.mark.parametrize(
    "native",
    [
        PostgresNative(fields=("x", "x"), rows=({"x": 2},), status="SELECT 1"),
        MySQLNative(rows=({"x": 2},), fields=("x", "x"), affected_rows=1, returns_rows=True),
        SQLiteNative(rows=({"x": 2},), description=("x", "x"), changes=-1, returns_rows=True),
    ],
    ids=["postgres", "mysql", "sqlite"],
)
def test_duplicate_column_names_are_preserved(native: PostgresNative | MySQLNative | SQLiteNative) -> None:
    result = normalize_native(native)

    assert result.columns == ("x", "x")
    assert result.row_count == len(result.rows) == 1


@pytest.mark.parametrize(
    ("status", "expected"),
    [("INSERT 0 5", 5), ("DELETE 1", 1), ("CREATE TABLE", 0), ("", 0), (None, 0)],
)
def test_status_row_count(status: str | None, expected: int) -> None:
    assert status_row_count(status) == expected


def test_engine_parse_is_case_insensitive() -> None:
    assert Engine.parse("postgres") is Engine.POSTGRES
    assert Engine.parse("MYSQL") is Engine.MYSQL
    assert Engine.parse(Engine.SQLITE) is Engine.SQLITE


def test_engine_parse_rejects_unknown_engines() -> None:
    with pytest.raises(UnsupportedEngineError, match="Oracle"):
        Engine.parse("Oracle")


def test_result_to_dict_copies_rows() -> None:
    row = {"a": 1}
    result = NormalizedResult(columns=("a",), rows=(row,), row_count=1)

    payload = result.to_dict()
    payload["rows"][0]["a"] = 99

    assert row == {"a": 1}


def test_connection_test_result_to_dict() -> None:
    assert ConnectionTestResult(success=True).to_dict() == {"success": True, "error": ""}


def test_group_columns_preserves_order() -> None:
    rows = [
        {"table_name": "accounts", "column_name": "id", "data_type": "integer", "is_nullable": "NO", "column_default": None},
        {"table_name": "accounts", "column_name": "email", "data_type": "text", "is_nullable": "YES", "column_default": None},
        {"table_name": "orders", "column_name": "status", "data_type": "text", "is_nullable": "NO", "column_default": "'pending'"},
    ]

    tables = group_columns(rows)

    assert [table.table for table in tables] == ["accounts", "orders"]
    assert tables[0].columns[1] == ColumnDef(name="email", type="text", nullable=True)
    assert tables[1].columns[0].default == "'pending'"


def test_quote_identifier_uses_dialect_quotes() -> None:
    assert quote_identifier("orders", "sqlite") == '"orders"'
    assert quote_identifier("orders", "mysql") == "`orders`"


def test_redact_strips_secret() -> None:
    message = 'password authentication failed: "s3cret" rejected'

    assert "s3cret" not in redact(message, "s3cret")
    assert redact(message, None) == message
