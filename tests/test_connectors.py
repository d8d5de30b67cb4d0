from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from types import SimpleNamespace
from typing import Any

import pytest

from pystiga._constants import EVENT_CONNECTOR_INSTALLED, EVENT_CONNECTOR_UNINSTALLED, snapshot_event
from pystiga.entity import Entity
from pystiga.state.events import ConnectorInstalled, ConnectorUninstalled, EventBus, Handler, Unsubscribe
from pystiga.state.schema import EntitySchema, registry_attr, telemetry_attr

IDENTITY = "AA:BB:CC:DD:EE:FF"

SCHEMA = EntitySchema(
    "probe",
    [
        registry_attr("name"),
        registry_attr("serial_number"),
        telemetry_attr("temperature", timedelta(minutes=1)),
    ],
)


@dataclass
class FakePushConnector:
    bus: EventBus = field(default_factory=EventBus)

    def provides(self, key: str) -> bool:
        return True

    def subscribe(self, event: str, handler: Handler) -> Unsubscribe:
        return self.bus.subscribe(event, handler)


@dataclass
class FakeSnapshotSource:
    def provides(self, key: str) -> bool:
        return key in SCHEMA.registry_keys


@pytest.fixture
def entity() -> Entity:
    return Entity(IDENTITY, SCHEMA)


def test_install_applies_snapshot_and_announces_connector(entity: Entity) -> None:
    installed: list[ConnectorInstalled] = []
    entity.subscribe(EVENT_CONNECTOR_INSTALLED, installed.append)
    source = FakeSnapshotSource()

    entity.install_connector("garage", source, SimpleNamespace(name="Probe", serial_number=None))

    assert entity.connector_names() == ["garage"]
    assert entity.get_connector("garage") is source
    assert [(event.name, event.connector) for event in installed] == [("garage", source)]
    assert entity.schema.registry_keys == ("name", "serial_number")


@pytest.mark.asyncio
async def test_snapshot_values_are_readable(entity: Entity) -> None:
    entity.install_connector("garage", FakeSnapshotSource(), SimpleNamespace(name="Probe", serial_number=None))

    assert (await entity.get("name")).value == "Probe"
    assert (await entity.get("serial_number")).value is None


@pytest.mark.asyncio
async def test_pushed_values_reach_the_store(entity: Entity) -> None:
    connector = FakePushConnector()
    entity.install_connector("mqtt", connector)

    connector.bus.emit("temperature", 21)
    connector.bus.emit(snapshot_event(IDENTITY), SimpleNamespace(name="Pushed", serial_number="SN-1"))
    # Snapshots for another identity are not ours.
    connector.bus.emit(snapshot_event("00:00:00:00:00:00"), SimpleNamespace(name="Other", serial_number=None))

    assert (await entity.get("temperature")).value == 21
    assert (await entity.get("name")).value == "Pushed"
    assert (await entity.get("serial_number")).value == "SN-1"


@pytest.mark.asyncio
async def test_reinstall_replaces_and_detaches_previous(entity: Entity, caplog: pytest.LogCaptureFixture) -> None:
    first = FakePushConnector()
    second = FakePushConnector()
    entity.install_connector("mqtt", first)

    with caplog.at_level(logging.WARNING, logger="pystiga.state.connectors"):
        entity.install_connector("mqtt", second)

    assert any("already installed" in record.getMessage() for record in caplog.records)
    assert entity.connector_names() == ["mqtt"]
    assert entity.get_connector("mqtt") is second
    assert first.bus.listener_count("temperature") == 0

    first.bus.emit("temperature", 1)
    assert (await entity.get("temperature")).value is None
    second.bus.emit("temperature", 2)
    assert (await entity.get("temperature")).value == 2


def test_uninstall_unknown_connector_logs_error(entity: Entity, caplog: pytest.LogCaptureFixture) -> None:
    uninstalled: list[ConnectorUninstalled] = []
    entity.subscribe(EVENT_CONNECTOR_UNINSTALLED, uninstalled.append)

    with caplog.at_level(logging.ERROR, logger="pystiga.state.connectors"):
        entity.uninstall_connector("mqtt")

    assert uninstalled == []
    assert [record.getMessage() for record in caplog.records] == [f"probe {IDENTITY}: connector 'mqtt' not found"]


@pytest.mark.asyncio
async def test_uninstall_detaches_only_that_connector(entity: Entity) -> None:
    first = FakePushConnector()
    second = FakePushConnector()
    entity.install_connector("first", first)
    entity.install_connector("second", second)
    uninstalled: list[str] = []
    entity.subscribe(EVENT_CONNECTOR_UNINSTALLED, lambda event: uninstalled.append(event.name))

    entity.uninstall_connector("first")

    assert uninstalled == ["first"]
    assert entity.connector_names() == ["second"]
    assert first.bus.listener_count("temperature") == 0
    assert first.bus.listener_count(snapshot_event(IDENTITY)) == 0
    assert second.bus.listener_count("temperature") == 1

    first.bus.emit("temperature", 10)
    assert (await entity.get("temperature")).value is None
    second.bus.emit("temperature", 7)
    assert (await entity.get("temperature")).value == 7


def test_is_connected_follows_installed_connectors(entity: Entity) -> None:
    assert entity.is_connected() is False

    entity.install_connector("mqtt", FakePushConnector())
    entity.install_connector("garage", FakeSnapshotSource())
    assert entity.is_connected() is True
    assert entity.connector_names() == ["mqtt", "garage"]

    entity.uninstall_connector("mqtt")
    assert entity.is_connected() is True
    entity.uninstall_connector("garage")
    assert entity.is_connected() is False


def test_close_detaches_everything(entity: Entity) -> None:
    connector = FakePushConnector()
    changes: list[Any] = []
    entity.install_connector("mqtt", connector)
    entity.subscribe("temperature", changes.append)

    entity.close()

    assert entity.is_connected() is False
    assert connector.bus.listener_count("temperature") == 0
    entity.put("temperature", 5, "test")
    assert changes == []


def test_subscription_handle_removes_only_its_handler(entity: Entity) -> None:
    seen_a: list[Any] = []
    seen_b: list[Any] = []
    unsubscribe_a = entity.subscribe("temperature", seen_a.append)
    entity.subscribe("temperature", seen_b.append)

    entity.put("temperature", 1, "test")
    unsubscribe_a()
    unsubscribe_a()
    entity.put("temperature", 2, "test")

    assert seen_a == [1]
    assert seen_b == [1, 2]
