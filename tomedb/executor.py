"""Query execution services shared by the UI and the AI tool layer."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any

from .adapters import AdapterSet, EngineAdapter
from .adapters.base import QueryParams
from .errors import ConnectionBackendError, DecryptionError
from .models import ConnectionDescriptor, ConnectionTestResult, NormalizedResult
from .registry import ConnectionRegistry
from .vault import CredentialVault

LOG = logging.getLogger(__name__)


class QueryExecutor:
    """Runs SQL against a descriptor and returns engine-neutral results."""

    def __init__(self, registry: ConnectionRegistry, vault: CredentialVault, adapters: AdapterSet) -> None:
        self._registry = registry
        self._vault = vault
        self._adapters = adapters

    async def run(
        self,
        descriptor: ConnectionDescriptor,
        sql: str,
        params: QueryParams = None,
    ) -> NormalizedResult:
        """Execute `sql` on the registry's handle for `descriptor`, connecting lazily."""

        adapter = self._adapters.adapter_for(descriptor.engine)
        handle = await self._registry.connect(descriptor)
        started = time.perf_counter()
        native = await adapter.execute(handle, sql, params)
        result = self._finish(adapter, native, started)
        LOG.debug(
            "Query finished",
            extra={
                "connection_id": descriptor.id,
                "engine": descriptor.engine.value,
                "elapsed_ms": result.elapsed_ms,
                "row_count": result.row_count,
            },
        )
        return result

    async def run_detached(
        self,
        descriptor: ConnectionDescriptor,
        sql: str,
        params: QueryParams = None,
    ) -> NormalizedResult:
        """Execute once on a transient handle that is never registered."""

        adapter = self._adapters.adapter_for(descriptor.engine)
        self._check_decryptable(descriptor)
        handle = await adapter.open(descriptor.params, self._vault.reveal)
        try:
            started = time.perf_counter()
            native = await adapter.execute(handle, sql, params)
            return self._finish(adapter, native, started)
        finally:
            try:
                await adapter.close(handle)
            except Exception:
                LOG.warning(
                    "Failed to close transient connection",
                    extra={"connection_id": descriptor.id, "engine": descriptor.engine.value},
                    exc_info=True,
                )

    async def test_connection(self, descriptor: ConnectionDescriptor) -> ConnectionTestResult:
        """Probe the descriptor without touching the registry."""

        adapter = self._adapters.adapter_for(descriptor.engine)
        try:
            connection_params = self._vault.reveal_params(descriptor.params)
        except DecryptionError as exc:
            return ConnectionTestResult(success=False, error=str(exc))
        return await adapter.test_connect(connection_params)

    async def connect(self, descriptor: ConnectionDescriptor) -> Any:
        return await self._registry.connect(descriptor)

    async def disconnect(self, descriptor: ConnectionDescriptor | int) -> None:
        await self._registry.disconnect(descriptor)

    def list_active(self) -> list[ConnectionDescriptor]:
        return self._registry.list_active()

    def _check_decryptable(self, descriptor: ConnectionDescriptor) -> None:
        try:
            self._vault.reveal(descriptor.params.password)
        except DecryptionError as exc:
            raise ConnectionBackendError(
                f"Could not decrypt the stored password for connection '{descriptor.name}'.",
                engine=descriptor.engine.value,
            ) from exc

    @staticmethod
    def _finish(adapter: EngineAdapter, native: Any, started: float) -> NormalizedResult:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return dataclasses.replace(adapter.normalize(native), elapsed_ms=elapsed_ms)


__all__ = ["QueryExecutor"]
