"""Engine adapters and the single point where engines are registered."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from ..errors import UnsupportedEngineError
from ..models import Engine
from .base import EngineAdapter, normalize_native
from .mysql import MySQLAdapter, MySQLSession
from .postgres import PostgresAdapter
from .sqlite import SQLiteAdapter

AdapterFactory = Callable[..., EngineAdapter]

ADAPTERS: Mapping[Engine, AdapterFactory] = {
    Engine.POSTGRES: PostgresAdapter,
    Engine.MYSQL: MySQLAdapter,
    Engine.SQLITE: SQLiteAdapter,
}


class AdapterSet:
    """Adapter instances keyed by engine, built once per process."""

    def __init__(self, adapters: Mapping[Engine, EngineAdapter]) -> None:
        self._adapters = dict(adapters)

    @classmethod
    def default(
        cls,
        *,
        test_timeout: float | None = None,
        pool_min_size: int | None = None,
        pool_max_size: int | None = None,
    ) -> "AdapterSet":
        common: dict[str, Any] = {}
        if test_timeout is not None:
            common["test_timeout"] = test_timeout
        pool: dict[str, Any] = {}
        if pool_min_size is not None:
            pool["pool_min_size"] = pool_min_size
        if pool_max_size is not None:
            pool["pool_max_size"] = pool_max_size
        adapters: dict[Engine, EngineAdapter] = {}
        for engine, factory in ADAPTERS.items():
            kwargs = dict(common)
            if engine is Engine.POSTGRES:
                kwargs.update(pool)
            adapters[engine] = factory(**kwargs)
        return cls(adapters)

    def adapter_for(self, engine: Engine | str) -> EngineAdapter:
        """Return the adapter for `engine`; unknown engines fail immediately."""

        adapter = self._adapters.get(Engine.parse(engine))
        if adapter is None:
            raise UnsupportedEngineError(engine)
        return adapter

    def engines(self) -> tuple[Engine, ...]:
        return tuple(self._adapters)


__all__ = [
    "ADAPTERS",
    "AdapterSet",
    "EngineAdapter",
    "MySQLAdapter",
    "MySQLSession",
    "PostgresAdapter",
    "SQLiteAdapter",
    "normalize_native",
]
