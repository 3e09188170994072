"""Process-wide owner of live connection handles."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

from .adapters import AdapterSet, EngineAdapter
from .errors import ConnectionBackendError, DecryptionError
from .models import ConnectionDescriptor
from .vault import CredentialVault

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """A live handle and the descriptor/adapter it was opened with."""

    descriptor: ConnectionDescriptor
    adapter: EngineAdapter
    handle: Any


class ConnectionRegistry:
    """Maps connection ids to live handles.

    At most one handle exists per id. `connect` is serialized per id so
    concurrent callers share the first successful `open`; queries never take
    a registry-wide lock.
    """

    def __init__(self, vault: CredentialVault, adapters: AdapterSet) -> None:
        self._vault = vault
        self._adapters = adapters
        self._entries: dict[int, RegistryEntry] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_users: dict[int, int] = {}
        self._guard = asyncio.Lock()

    async def connect(self, descriptor: ConnectionDescriptor) -> Any:
        """Return the handle for `descriptor`, opening it on first use."""

        existing = self._entries.get(descriptor.id)
        if existing is not None:
            return existing.handle
        adapter = self._adapters.adapter_for(descriptor.engine)
        async with self._locked(descriptor.id):
            existing = self._entries.get(descriptor.id)
            if existing is not None:
                return existing.handle
            self._check_decryptable(descriptor)
            handle = await adapter.open(descriptor.params, self._vault.reveal)
            self._entries[descriptor.id] = RegistryEntry(descriptor=descriptor, adapter=adapter, handle=handle)
        LOG.info(
            "Connection opened",
            extra={"connection_id": descriptor.id, "engine": descriptor.engine.value},
        )
        return handle

    async def disconnect(self, descriptor: ConnectionDescriptor | int) -> None:
        """Drop the entry and close its handle; absent ids are a no-op."""

        connection_id = descriptor if isinstance(descriptor, int) else descriptor.id
        entry = self._entries.pop(connection_id, None)
        if entry is None:
            return
        try:
            await entry.adapter.close(entry.handle)
        except Exception:
            LOG.warning(
                "Failed to close connection cleanly",
                extra={"connection_id": connection_id, "engine": entry.descriptor.engine.value},
                exc_info=True,
            )
            return
        LOG.info(
            "Connection closed",
            extra={"connection_id": connection_id, "engine": entry.descriptor.engine.value},
        )

    def list_active(self) -> list[ConnectionDescriptor]:
        return [entry.descriptor for entry in tuple(self._entries.values())]

    def is_active(self, connection_id: int) -> bool:
        return connection_id in self._entries

    def entry(self, connection_id: int) -> RegistryEntry | None:
        return self._entries.get(connection_id)

    async def close_all(self) -> None:
        """Disconnect every live handle (process shutdown)."""

        for connection_id in tuple(self._entries):
            await self.disconnect(connection_id)

    @asynccontextmanager
    async def _locked(self, connection_id: int) -> AsyncIterator[None]:
        """Hold the per-id connect lock; it is dropped once no caller needs it."""

        async with self._guard:
            lock = self._locks.get(connection_id)
            if lock is None:
                lock = self._locks[connection_id] = asyncio.Lock()
            self._lock_users[connection_id] = self._lock_users.get(connection_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[connection_id] -= 1
            if not self._lock_users[connection_id]:
                del self._lock_users[connection_id]
                del self._locks[connection_id]

    def _check_decryptable(self, descriptor: ConnectionDescriptor) -> None:
        try:
            self._vault.reveal(descriptor.params.password)
        except DecryptionError as exc:
            raise ConnectionBackendError(
                f"Could not decrypt the stored password for connection '{descriptor.name}'.",
                engine=descriptor.engine.value,
            ) from exc


__all__ = ["ConnectionRegistry", "RegistryEntry"]
