"""Refresh coordination.

An update pass runs in three sequential phases: let every relevant
connector make itself ready, resolve which keys to fetch, then ask each
capable connector to fetch each key. Keys and connectors are visited one
at a time, never fanned out in parallel.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pystiga.state.connectors import ConnectorRegistry
from pystiga.state.schema import EntitySchema
from pystiga.state.store import AttributeStore

_logger = logging.getLogger(__name__)


def optimized_keys(schema: EntitySchema) -> list[str]:
    """Keys to fetch for a full refresh.

    Batch keys come first. A key batched by one of them is left out since
    fetching the batch refreshes it too; every other key follows in schema
    order.
    """
    batch_keys = [spec.key for spec in schema if spec.is_batch]
    covered = {spec.key for spec in schema if spec.batched_by in batch_keys}
    rest = [spec.key for spec in schema if not spec.is_batch and spec.key not in covered]
    return batch_keys + rest


class UpdateCoordinator:
    """Drive connector loads and fetches for one entity."""

    def __init__(
        self,
        identity: str,
        schema: EntitySchema,
        store: AttributeStore,
        registry: ConnectorRegistry,
    ) -> None:
        self._identity = identity
        self._schema = schema
        self._store = store
        self._registry = registry
        self._optimized = optimized_keys(schema)

    def resolve_keys(self, key: str | None = None) -> list[str]:
        if key is None:
            return list(self._optimized)
        self._schema.spec(key)
        return [key]

    async def update(self, key: str | None = None) -> None:
        keys = self.resolve_keys(key)
        await self._load(key)
        for k in keys:
            await self._fetch(k)

    async def _load(self, key: str | None) -> None:
        for entry in self._registry:
            if entry.loader is None:
                continue
            if key is None or entry.provides(key):
                await entry.loader(self._identity)

    async def _fetch(self, key: str) -> None:
        capability = self._schema.spec(key).fetch
        for entry in self._registry:
            if not entry.provides(key):
                continue
            if capability is None:
                # Supplied through snapshots; the load phase already refreshed it.
                continue
            method = entry.capabilities.get(capability)
            if method is None:
                _logger.debug(
                    "%s %s: connector %s provides %s but has no %s",
                    self._schema.kind,
                    self._identity,
                    entry.name,
                    key,
                    capability,
                )
                continue
            try:
                result = await method()
            except Exception:
                _logger.error(
                    "%s %s: failed to refresh %s from %s",
                    self._schema.kind,
                    self._identity,
                    key,
                    entry.name,
                    exc_info=True,
                )
                continue
            # Pull-only connectors hand the value back instead of publishing it.
            if result is not None and not entry.pushes:
                self._store.put(key, result, entry.name)
                if self._schema.spec(key).is_batch and isinstance(result, Mapping):
                    self._put_members(key, result, entry.name)

    def _put_members(self, batch_key: str, result: Mapping[str, Any], source: str) -> None:
        """Fan a pulled batch result out to the keys it covers."""
        for spec in self._schema:
            if spec.batched_by == batch_key and spec.key in result:
                self._store.put(spec.key, result[spec.key], source)
