"""Schema discovery built on the executor's run/run_detached paths."""

from __future__ import annotations

import logging

from .adapters import AdapterSet, EngineAdapter
from .adapters.base import QueryParams, Runner
from .errors import QueryExecutionError, SchemaIntrospectionError
from .executor import QueryExecutor
from .models import ConnectionDescriptor, DatabaseSchema, NormalizedResult, SchemaInfo, TableDef

LOG = logging.getLogger(__name__)


class SchemaInspector:
    """Lists databases, schemas and tables for any registered engine."""

    def __init__(self, executor: QueryExecutor, adapters: AdapterSet) -> None:
        self._executor = executor
        self._adapters = adapters

    async def list_databases(self, descriptor: ConnectionDescriptor) -> list[str]:
        adapter = self._adapters.adapter_for(descriptor.engine)
        return await adapter.list_databases(self._runner(adapter, descriptor, None), descriptor)

    async def list_schemas(self, descriptor: ConnectionDescriptor, target_db: str | None = None) -> list[str]:
        adapter = self._adapters.adapter_for(descriptor.engine)
        return await adapter.list_schemas(self._runner(adapter, descriptor, target_db), descriptor, target_db)

    async def list_schema_tables(
        self,
        descriptor: ConnectionDescriptor,
        schema: str,
        target_db: str | None = None,
    ) -> list[TableDef]:
        adapter = self._adapters.adapter_for(descriptor.engine)
        return await adapter.list_schema_tables(
            self._runner(adapter, descriptor, target_db), descriptor, schema, target_db
        )

    async def get_full_schema(
        self,
        descriptor: ConnectionDescriptor,
        target_db: str | None = None,
    ) -> DatabaseSchema:
        """Describe every schema of `target_db` (default: the descriptor's database).

        A schema whose tables cannot be listed is reported empty; failing to
        list the schemas themselves raises `SchemaIntrospectionError`.
        """

        database = target_db or descriptor.params.database or ""
        try:
            schema_names = await self.list_schemas(descriptor, target_db)
        except QueryExecutionError as exc:
            raise SchemaIntrospectionError(
                f"Could not list schemas for database '{database}': {exc}",
                engine=descriptor.engine.value,
            ) from exc

        schemas: list[SchemaInfo] = []
        for name in schema_names:
            try:
                tables = await self.list_schema_tables(descriptor, name, target_db)
            except QueryExecutionError:
                LOG.warning(
                    "Skipping schema that could not be inspected",
                    extra={"connection_id": descriptor.id, "schema": name, "database": database},
                    exc_info=True,
                )
                tables = []
            schemas.append(SchemaInfo(name=name, tables=tuple(tables)))
        return DatabaseSchema(database=database, schemas=tuple(schemas))

    def _runner(
        self,
        adapter: EngineAdapter,
        descriptor: ConnectionDescriptor,
        target_db: str | None,
    ) -> Runner:
        if adapter.database_scoped and target_db and target_db != descriptor.params.database:
            detached = descriptor.with_params(descriptor.params.with_database(target_db))

            async def _run_detached(sql: str, params: QueryParams) -> NormalizedResult:
                return await self._executor.run_detached(detached, sql, params)

            return _run_detached

        async def _run(sql: str, params: QueryParams) -> NormalizedResult:
            return await self._executor.run(descriptor, sql, params)

        return _run


__all__ = ["SchemaInspector"]
