"""Persistence of connection descriptors in the app config file."""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import Any, Iterable
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

from .config import AppConfig, ConnectionRecordConfig, load_config, save_config
from .models import ConnectionDescriptor, ConnectionParams, ConnectionSettings, Engine
from .vault import CredentialVault

LOG = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"name", "engine", "params", "description", "settings"})


class ConnectionStore:
    """CRUD over stored connections; passwords are written in `enc:` form only."""

    def __init__(self, vault: CredentialVault, config: AppConfig | None = None) -> None:
        self._vault = vault
        self._config = config if config is not None else load_config()

    @property
    def config(self) -> AppConfig:
        return self._config

    def list_connections(self) -> list[ConnectionDescriptor]:
        return self._config.descriptors()

    def get_connection(self, connection_id: int) -> ConnectionDescriptor:
        for record in self._config.connections:
            if record.id == connection_id:
                return record.to_descriptor()
        raise KeyError(connection_id)

    def create_connection(
        self,
        name: str,
        engine: Engine | str,
        params: ConnectionParams,
        *,
        description: str | None = None,
        settings: ConnectionSettings | None = None,
    ) -> ConnectionDescriptor:
        descriptor = ConnectionDescriptor(
            id=self._next_id(),
            name=name,
            engine=Engine.parse(engine),
            params=self._secure(params),
            description=description,
            settings=settings or ConnectionSettings(),
        )
        records = [*self._config.connections, ConnectionRecordConfig.from_descriptor(descriptor)]
        self._persist(records)
        LOG.info("Connection created", extra={"connection_id": descriptor.id, "engine": descriptor.engine.value})
        return descriptor

    def update_connection(self, connection_id: int, **changes: Any) -> ConnectionDescriptor:
        """Apply `changes` (name, engine, params, description, settings) to a stored record."""

        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown connection fields: {', '.join(sorted(unknown))}")
        current = self.get_connection(connection_id)
        if "engine" in changes:
            changes["engine"] = Engine.parse(changes["engine"])
        if "params" in changes:
            changes["params"] = self._secure(changes["params"])
        updated = dataclasses.replace(current, **changes)
        records = [
            ConnectionRecordConfig.from_descriptor(updated) if record.id == connection_id else record
            for record in self._config.connections
        ]
        self._persist(records)
        LOG.info("Connection updated", extra={"connection_id": connection_id})
        return updated

    def delete_connections(self, ids: Iterable[int]) -> None:
        doomed = set(ids)
        records = [record for record in self._config.connections if record.id not in doomed]
        if len(records) == len(self._config.connections):
            return
        self._persist(records)
        LOG.info("Connections deleted", extra={"connection_ids": sorted(doomed)})

    def _secure(self, params: ConnectionParams) -> ConnectionParams:
        return self._vault.protect_params(lift_dsn_password(params))

    def _next_id(self) -> int:
        return max((record.id for record in self._config.connections), default=0) + 1

    def _persist(self, records: list[ConnectionRecordConfig]) -> None:
        config = self._config.with_connections(records)
        save_config(config)
        self._config = config


_BARE_PASSWORD = re.compile(r"(^|[\s?&])password\s*=", re.IGNORECASE)


def lift_dsn_password(params: ConnectionParams) -> ConnectionParams:
    """Move a password embedded in `options["dsn"]` into `params.password`.

    An explicit `params.password` wins over the DSN one. Keyword-style DSNs
    (`host=... password=...`) and host-less URLs carrying a password are
    rejected.
    """

    dsn = params.options.get("dsn")
    if not dsn:
        return params
    parts = urlsplit(dsn)
    if not parts.scheme or not parts.netloc:
        if _BARE_PASSWORD.search(dsn):
            raise ValueError("This DSN form cannot carry a password; set the password field instead.")
        return params
    query = parse_qsl(parts.query, keep_blank_values=True)
    query_passwords = [value for key, value in query if key == "password"]
    if parts.password is None and not query_passwords:
        return params
    embedded = unquote(parts.password) if parts.password is not None else query_passwords[-1]
    userinfo, _, hostport = parts.netloc.rpartition("@")
    user = userinfo.split(":", 1)[0]
    stripped = parts._replace(
        netloc=f"{user}@{hostport}" if user else hostport,
        query=urlencode([(key, value) for key, value in query if key != "password"]) if query_passwords else parts.query,
    )
    return dataclasses.replace(
        params,
        password=params.password or embedded,
        options={**params.options, "dsn": urlunsplit(stripped)},
    )


__all__ = ["ConnectionStore", "lift_dsn_password"]
