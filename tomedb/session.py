"""Session manager exposing the connection layer to the UI and AI tools."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from .adapters import AdapterSet
from .adapters.base import QueryParams
from .config import AppConfig, load_config
from .executor import QueryExecutor
from .introspection import SchemaInspector
from .models import (
    ConnectionDescriptor,
    ConnectionParams,
    ConnectionSettings,
    ConnectionTestResult,
    DatabaseSchema,
    Engine,
    NormalizedResult,
    TableDef,
)
from .registry import ConnectionRegistry
from .store import ConnectionStore
from .vault import CredentialVault

LOG = logging.getLogger(__name__)

SessionListener = Callable[["SessionState"], None]
ConnectionRef = int | ConnectionDescriptor


@dataclass(frozen=True, slots=True)
class SessionState:
    """Snapshot emitted whenever a connection opens or closes."""

    active: tuple[ConnectionDescriptor, ...]
    changed_id: int
    connected: bool


class SessionManager:
    """Single entry point wiring vault, store, registry, executor and inspector."""

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        vault: CredentialVault | None = None,
        adapters: AdapterSet | None = None,
        store: ConnectionStore | None = None,
    ) -> None:
        self._config = config if config is not None else load_config()
        core = self._config.core
        self._vault = vault or CredentialVault.from_key_file(core.key_file)
        self._adapters = adapters or AdapterSet.default(
            test_timeout=core.test_timeout,
            pool_min_size=core.pool_min_size,
            pool_max_size=core.pool_max_size,
        )
        self._store = store or ConnectionStore(self._vault, self._config)
        self._registry = ConnectionRegistry(self._vault, self._adapters)
        self._executor = QueryExecutor(self._registry, self._vault, self._adapters)
        self._inspector = SchemaInspector(self._executor, self._adapters)
        self._listeners: set[SessionListener] = set()

    @property
    def store(self) -> ConnectionStore:
        return self._store

    @property
    def executor(self) -> QueryExecutor:
        return self._executor

    @property
    def inspector(self) -> SchemaInspector:
        return self._inspector

    # Stored connections

    def list_connections(self) -> list[ConnectionDescriptor]:
        return self._store.list_connections()

    def get_connection(self, connection_id: int) -> ConnectionDescriptor:
        return self._store.get_connection(connection_id)

    def create_connection(
        self,
        name: str,
        engine: Engine | str,
        params: ConnectionParams,
        *,
        description: str | None = None,
        settings: ConnectionSettings | None = None,
    ) -> ConnectionDescriptor:
        return self._store.create_connection(
            name, engine, params, description=description, settings=settings
        )

    async def update_connection(self, connection_id: int, **changes: Any) -> ConnectionDescriptor:
        """Persist changes; a live handle is dropped so the next use reconnects."""

        updated = self._store.update_connection(connection_id, **changes)
        if self._registry.is_active(connection_id):
            await self.disconnect(connection_id)
        return updated

    async def delete_connections(self, ids: Iterable[int]) -> None:
        doomed = list(ids)
        for connection_id in doomed:
            if self._registry.is_active(connection_id):
                await self.disconnect(connection_id)
        self._store.delete_connections(doomed)

    # Live connections

    async def test_connection(self, descriptor: ConnectionDescriptor) -> ConnectionTestResult:
        """Probe a saved or unsaved descriptor without registering a handle."""

        return await self._executor.test_connection(descriptor)

    async def connect(self, ref: ConnectionRef) -> ConnectionDescriptor:
        descriptor = self._resolve(ref)
        await self._tracking(descriptor, self._executor.connect(descriptor))
        return descriptor

    async def disconnect(self, ref: ConnectionRef) -> None:
        descriptor = self._resolve(ref)
        await self._tracking(descriptor, self._executor.disconnect(descriptor))

    def list_active_connections(self) -> list[ConnectionDescriptor]:
        return self._executor.list_active()

    async def run(self, ref: ConnectionRef, sql: str, params: QueryParams = None) -> NormalizedResult:
        descriptor = self._resolve(ref)
        return await self._tracking(descriptor, self._executor.run(descriptor, sql, params))

    # Introspection

    async def list_remote_databases(self, ref: ConnectionRef) -> list[str]:
        return await self._inspector.list_databases(self._resolve(ref))

    async def list_schemas(self, ref: ConnectionRef, target_db: str | None = None) -> list[str]:
        return await self._inspector.list_schemas(self._resolve(ref), target_db)

    async def list_schema_tables(
        self, ref: ConnectionRef, schema: str, target_db: str | None = None
    ) -> list[TableDef]:
        return await self._inspector.list_schema_tables(self._resolve(ref), schema, target_db)

    async def get_full_schema(self, ref: ConnectionRef, target_db: str | None = None) -> DatabaseSchema:
        return await self._inspector.get_full_schema(self._resolve(ref), target_db)

    # Lifecycle

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to session updates; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    async def shutdown(self) -> None:
        """Close every live handle."""

        active = [descriptor.id for descriptor in self._registry.list_active()]
        await self._registry.close_all()
        for connection_id in active:
            self._notify(connection_id, connected=False)

    def _resolve(self, ref: ConnectionRef) -> ConnectionDescriptor:
        if isinstance(ref, ConnectionDescriptor):
            return ref
        return self._store.get_connection(ref)

    async def _tracking(self, descriptor: ConnectionDescriptor, operation: Any) -> Any:
        was_active = self._registry.is_active(descriptor.id)
        try:
            return await operation
        finally:
            is_active = self._registry.is_active(descriptor.id)
            if is_active != was_active:
                self._notify(descriptor.id, connected=is_active)

    def _notify(self, connection_id: int, *, connected: bool) -> None:
        state = SessionState(
            active=tuple(self._registry.list_active()),
            changed_id=connection_id,
            connected=connected,
        )
        for listener in tuple(self._listeners):
            try:
                listener(state)
            except Exception:
                LOG.warning("Session listener failed", extra={"connection_id": connection_id}, exc_info=True)


__all__ = [
    "SessionListener",
    "SessionManager",
    "SessionState",
]
