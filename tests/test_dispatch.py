from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import pytest

from pystiga.entity import Entity, StigaBase, StigaDevice
from pystiga.exceptions import StigaConnectorError, StigaNoConnectorError, StigaUnknownKeyError
from pystiga.state.schema import EntitySchema, registry_attr

IDENTITY = "AA:BB:CC:DD:EE:FF"

SCHEMA = EntitySchema("probe", [registry_attr("name")], commands=["send_ping", "set_mode"])


@dataclass
class FakeCommandConnector:
    result: Any = "ok"
    error: Exception | None = None
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    def provides(self, key: str) -> bool:
        return False

    async def _run(self, name: str, *args: Any) -> Any:
        self.calls.append((name, args))
        if self.error is not None:
            raise self.error
        return self.result

    async def send_ping(self) -> Any:
        return await self._run("send_ping")

    async def set_mode(self, mode: str) -> Any:
        return await self._run("set_mode", mode)


@dataclass
class FakeReadOnlyConnector:
    def provides(self, key: str) -> bool:
        return True


@pytest.fixture
def entity() -> Entity:
    return Entity(IDENTITY, SCHEMA)


@pytest.mark.asyncio
async def test_failure_falls_through_to_next_connector(entity: Entity, caplog: pytest.LogCaptureFixture) -> None:
    failing = FakeCommandConnector(error=StigaConnectorError("timeout", connector="a", operation="send_ping"))
    working = FakeCommandConnector(result="pong")
    entity.install_connector("a", failing)
    entity.install_connector("b", working)

    with caplog.at_level(logging.DEBUG, logger="pystiga.state.connectors"):
        result = await entity.invoke("send_ping")

    assert result == "pong"
    assert failing.calls == [("send_ping", ())]
    assert working.calls == [("send_ping", ())]
    errors = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert len(errors) == 1
    assert errors[0].getMessage() == f"probe {IDENTITY}: send_ping failure via a"
    assert any(record.getMessage() == f"probe {IDENTITY}: send_ping success via b" for record in caplog.records)


@pytest.mark.asyncio
async def test_first_success_stops_dispatch(entity: Entity) -> None:
    first = FakeCommandConnector(result="first")
    second = FakeCommandConnector(result="second")
    entity.install_connector("a", first)
    entity.install_connector("b", second)

    assert await entity.invoke("set_mode", "eco") == "first"
    assert first.calls == [("set_mode", ("eco",))]
    assert second.calls == []


@pytest.mark.asyncio
async def test_connectors_without_the_capability_are_skipped(entity: Entity) -> None:
    working = FakeCommandConnector()
    entity.install_connector("ro", FakeReadOnlyConnector())
    entity.install_connector("rw", working)

    assert await entity.invoke("send_ping") == "ok"
    assert working.calls == [("send_ping", ())]


@pytest.mark.asyncio
async def test_no_connector_available(entity: Entity) -> None:
    with pytest.raises(StigaNoConnectorError, match="No connector available for send_ping"):
        await entity.invoke("send_ping")

    entity.install_connector("ro", FakeReadOnlyConnector())
    with pytest.raises(StigaNoConnectorError):
        await entity.invoke("send_ping")


@pytest.mark.asyncio
async def test_all_connectors_failing_raises_no_connector(entity: Entity) -> None:
    entity.install_connector("a", FakeCommandConnector(error=RuntimeError("a")))
    entity.install_connector("b", FakeCommandConnector(error=RuntimeError("b")))

    with pytest.raises(StigaNoConnectorError) as excinfo:
        await entity.invoke("send_ping")
    assert excinfo.value.capability == "send_ping"


@pytest.mark.asyncio
async def test_undeclared_capability_is_rejected(entity: Entity) -> None:
    connector = FakeCommandConnector()
    entity.install_connector("a", connector)

    with pytest.raises(StigaUnknownKeyError):
        await entity.invoke("send_self_destruct")
    assert connector.calls == []


@dataclass
class FakeMowerCommands:
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    def provides(self, key: str) -> bool:
        return False

    async def send_start(self) -> bool:
        self.calls.append(("send_start", ()))
        return True

    async def send_go_home(self) -> bool:
        self.calls.append(("send_go_home", ()))
        return True

    async def set_zone_order(self, zone_order: Any) -> bool:
        self.calls.append(("set_zone_order", (zone_order,)))
        return True

    async def set_led_setting(self, value: Any) -> bool:
        self.calls.append(("set_led_setting", (value,)))
        return True


@pytest.mark.asyncio
async def test_device_commands_route_to_connector() -> None:
    device = StigaDevice(IDENTITY)
    connector = FakeMowerCommands()
    device.install_connector("mqtt", connector)

    assert await device.send_start() is True
    assert await device.send_go_home() is True
    assert await device.set_zone_order([2, 1]) is True
    with pytest.raises(StigaNoConnectorError):
        await device.send_calibrate_blades()

    assert connector.calls == [("send_start", ()), ("send_go_home", ()), ("set_zone_order", ([2, 1],))]


@pytest.mark.asyncio
async def test_base_led_setting_routes_to_setter() -> None:
    base = StigaBase("BB:BB:BB:BB:BB:BB")
    connector = FakeMowerCommands()
    base.install_connector("mqtt", connector)

    assert await base.set_setting("led", "on") is True
    assert await base.set_led_setting("off") is True
    with pytest.raises(StigaUnknownKeyError):
        await base.set_setting("buzzer", "on")
    with pytest.raises(StigaUnknownKeyError):
        await base.get_setting("buzzer")

    assert connector.calls == [("set_led_setting", ("on",)), ("set_led_setting", ("off",))]
