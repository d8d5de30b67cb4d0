"""Connector registry and command dispatch for one entity.

A connector is any object that can supply some of an entity's keys or
carry out some of its commands. What a connector can do is read once, at
install time, into a capability table keyed by the capability names the
entity kind declares; dispatch afterwards only consults that table.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Protocol, runtime_checkable

from pystiga._constants import EVENT_CONNECTOR_INSTALLED, EVENT_CONNECTOR_UNINSTALLED, snapshot_event
from pystiga.exceptions import StigaNoConnectorError, StigaUnknownKeyError
from pystiga.state.events import ConnectorInstalled, ConnectorUninstalled, EventBus, Handler, Unsubscribe
from pystiga.state.schema import EntitySchema
from pystiga.state.store import AttributeStore

_logger = logging.getLogger(__name__)

Capability = Callable[..., Awaitable[Any]]


@runtime_checkable
class Connector(Protocol):
    """Minimal connector contract: which keys it can supply."""

    def provides(self, key: str) -> bool: ...


@runtime_checkable
class LoadableConnector(Protocol):
    """Connector with an idempotent "ensure ready" hook."""

    async def load(self, identity: str) -> Any: ...


@runtime_checkable
class SubscribableConnector(Protocol):
    """Connector that pushes values as named events."""

    def subscribe(self, event: str, handler: Handler) -> Unsubscribe: ...


@dataclass(slots=True)
class InstalledConnector:
    """Registry entry: the connector plus everything created when installing it."""

    name: str
    connector: Any
    capabilities: dict[str, Capability] = field(default_factory=dict)
    loader: Callable[[str], Awaitable[Any]] | None = None
    subscriptions: list[Unsubscribe] = field(default_factory=list)
    pushes: bool = False
    """Whether values arrive as events rather than as fetch results."""

    def provides(self, key: str) -> bool:
        return bool(self.connector.provides(key))


def _capability_table(connector: Any, names: frozenset[str]) -> dict[str, Capability]:
    table: dict[str, Capability] = {}
    for name in sorted(names):
        member = getattr(connector, name, None)
        if callable(member):
            table[name] = member
    return table


class ConnectorRegistry:
    """Ordered ``name -> connector`` mapping for one entity.

    Insertion order is the order in which commands are offered to
    connectors. Re-installing a name replaces the previous connector in
    place.
    """

    def __init__(
        self,
        identity: str,
        schema: EntitySchema,
        store: AttributeStore,
        bus: EventBus,
    ) -> None:
        self._identity = identity
        self._schema = schema
        self._store = store
        self._bus = bus
        self._connectors: dict[str, InstalledConnector] = {}

    def __iter__(self) -> Iterator[InstalledConnector]:
        return iter(list(self._connectors.values()))

    def __len__(self) -> int:
        return len(self._connectors)

    def install(self, name: str, connector: Connector, snapshot: Any = None) -> None:
        if name in self._connectors:
            _logger.warning(
                "%s %s: connector '%s' already installed, replacing",
                self._schema.kind,
                self._identity,
                name,
            )
            self._unsubscribe(self._connectors[name])

        entry = InstalledConnector(
            name=name,
            connector=connector,
            capabilities=_capability_table(connector, self._schema.capabilities),
            loader=connector.load if isinstance(connector, LoadableConnector) else None,
        )
        if isinstance(connector, SubscribableConnector):
            entry.pushes = True
            for key in self._schema.keys:
                entry.subscriptions.append(connector.subscribe(key, partial(self._store.put, key, source=name)))
            entry.subscriptions.append(
                connector.subscribe(snapshot_event(self._identity), partial(self._apply_snapshot, source=name))
            )
        self._connectors[name] = entry

        if snapshot is not None:
            self._apply_snapshot(snapshot, source=name)
        _logger.debug(
            "%s %s: installed connector '%s' (%d capabilities)",
            self._schema.kind,
            self._identity,
            name,
            len(entry.capabilities),
        )
        self._bus.emit(EVENT_CONNECTOR_INSTALLED, ConnectorInstalled(name=name, connector=connector))

    def uninstall(self, name: str) -> None:
        entry = self._connectors.get(name)
        if entry is None:
            _logger.error("%s %s: connector '%s' not found", self._schema.kind, self._identity, name)
            return
        self._unsubscribe(entry)
        del self._connectors[name]
        _logger.debug("%s %s: uninstalled connector '%s'", self._schema.kind, self._identity, name)
        self._bus.emit(EVENT_CONNECTOR_UNINSTALLED, ConnectorUninstalled(name=name))

    def uninstall_all(self) -> None:
        for name in list(self._connectors):
            self.uninstall(name)

    def has_connector(self, name: str) -> bool:
        return name in self._connectors

    def connector_names(self) -> list[str]:
        return list(self._connectors)

    def get(self, name: str) -> Any:
        entry = self._connectors.get(name)
        return entry.connector if entry is not None else None

    def is_connected(self) -> bool:
        return bool(self._connectors)

    def _apply_snapshot(self, view: Any, *, source: str) -> None:
        self._store.put_snapshot(view, source)

    @staticmethod
    def _unsubscribe(entry: InstalledConnector) -> None:
        for unsubscribe in entry.subscriptions:
            unsubscribe()
        entry.subscriptions.clear()


class CommandDispatcher:
    """Route a write or command to the first connector that carries it out."""

    def __init__(self, identity: str, schema: EntitySchema, registry: ConnectorRegistry) -> None:
        self._identity = identity
        self._schema = schema
        self._registry = registry

    async def invoke(self, capability: str, *args: Any) -> Any:
        if capability not in self._schema.capabilities:
            raise StigaUnknownKeyError(capability, kind=self._schema.kind)
        for entry in self._registry:
            method = entry.capabilities.get(capability)
            if method is None:
                continue
            try:
                result = await method(*args)
            except Exception:
                _logger.error(
                    "%s %s: %s failure via %s",
                    self._schema.kind,
                    self._identity,
                    capability,
                    entry.name,
                    exc_info=True,
                )
                continue
            _logger.debug("%s %s: %s success via %s", self._schema.kind, self._identity, capability, entry.name)
            return result
        raise StigaNoConnectorError(capability)
