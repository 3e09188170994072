"""Error taxonomy shared by the vault, adapters, registry and executor."""

from __future__ import annotations


class TomeError(RuntimeError):
    """Base class for every error raised by tomedb."""


class UnsupportedEngineError(TomeError):
    """Raised when a descriptor names an engine without a registered adapter."""

    def __init__(self, engine: object) -> None:
        super().__init__(f"Unsupported engine {engine!s}")
        self.engine = engine


class ConnectionBackendError(TomeError):
    """Raised when a connection cannot be opened or probed.

    The message is the engine's raw diagnostic text so the UI can show it as-is.
    """

    def __init__(self, message: str, *, engine: str | None = None) -> None:
        super().__init__(message)
        self.engine = engine


class QueryExecutionError(TomeError):
    """Raised when a statement fails; the handle stays usable."""

    def __init__(self, message: str, *, engine: str | None = None) -> None:
        super().__init__(message)
        self.engine = engine


class DecryptionError(TomeError):
    """Raised when a stored credential cannot be decrypted."""


class SchemaIntrospectionError(QueryExecutionError):
    """Raised when a database's schema listing cannot be retrieved."""


__all__ = [
    "ConnectionBackendError",
    "DecryptionError",
    "QueryExecutionError",
    "SchemaIntrospectionError",
    "TomeError",
    "UnsupportedEngineError",
]
