from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pystiga.entity import Entity
from pystiga.exceptions import StigaConfigError, StigaTransportError, StigaUnknownKeyError
from pystiga.state.events import EventBus, Handler, RefreshMode, Unsubscribe
from pystiga.state.schema import Composite, EntitySchema, batch_attr, registry_attr, telemetry_attr

IDENTITY = "AA:BB:CC:DD:EE:FF"

SCHEMA = EntitySchema(
    "probe",
    [
        registry_attr("name"),
        telemetry_attr("temperature", timedelta(minutes=1), batched_by="status_all"),
        telemetry_attr("humidity", timedelta(minutes=5), batched_by="status_all"),
        batch_attr("status_all"),
        telemetry_attr("version"),
    ],
    composites={"status_all": Composite("status_all", {"temp": "temperature", "hum": "humidity"})},
)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class FakePullConnector:
    """Connector that hands fetched values back instead of publishing them."""

    values: dict[str, Any] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    def provides(self, key: str) -> bool:
        return key in {"temperature", "humidity", "status_all", "version"}

    async def _fetch(self, key: str) -> Any:
        self.calls.append(f"get_{key}")
        return self.values.get(key)

    async def get_temperature(self) -> Any:
        return await self._fetch("temperature")

    async def get_humidity(self) -> Any:
        return await self._fetch("humidity")

    async def get_status_all(self) -> Any:
        return await self._fetch("status_all")

    async def get_version(self) -> Any:
        return await self._fetch("version")


@dataclass
class FakeLoader:
    """Loadable connector for the snapshot-only keys."""

    error: Exception | None = None
    loads: list[str] = field(default_factory=list)

    def provides(self, key: str) -> bool:
        return key in {"name", "temperature"}

    async def load(self, identity: str) -> bool:
        self.loads.append(identity)
        if self.error is not None:
            raise self.error
        return True


@dataclass
class FakePushConnector:
    """Connector that publishes values and returns nothing useful."""

    bus: EventBus = field(default_factory=EventBus)
    calls: int = 0

    def provides(self, key: str) -> bool:
        return key == "version"

    def subscribe(self, event: str, handler: Handler) -> Unsubscribe:
        return self.bus.subscribe(event, handler)

    async def get_version(self) -> str:
        self.calls += 1
        self.bus.emit("version", "pushed")
        return "returned"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def entity(clock: FakeClock) -> Entity:
    return Entity(IDENTITY, SCHEMA, clock=clock)


def test_entity_requires_identity_and_schema() -> None:
    with pytest.raises(StigaConfigError):
        Entity("", SCHEMA)
    with pytest.raises(StigaConfigError):
        Entity(IDENTITY)


@pytest.mark.asyncio
async def test_plain_read_never_fetches(entity: Entity) -> None:
    connector = FakePullConnector(values={"temperature": 20})
    entity.install_connector("pull", connector)

    reading = await entity.get("temperature")

    assert reading.value is None
    assert reading.updated_at is None
    assert connector.calls == []


@pytest.mark.asyncio
async def test_ifstale_refreshes_once_until_threshold(entity: Entity, clock: FakeClock) -> None:
    connector = FakePullConnector(values={"temperature": 20})
    entity.install_connector("pull", connector)

    first = await entity.get("temperature", refresh="ifstale")
    assert first.value == 20
    assert first.updated_at == clock.now
    assert connector.calls == ["get_temperature"]

    clock.advance(seconds=30)
    second = await entity.get("temperature", refresh=RefreshMode.IF_STALE)
    assert second.value == 20
    assert connector.calls == ["get_temperature"]

    clock.advance(seconds=45)
    await entity.get("temperature", refresh="ifstale")
    assert connector.calls == ["get_temperature", "get_temperature"]


@pytest.mark.asyncio
async def test_ifstale_honours_explicit_threshold(entity: Entity, clock: FakeClock) -> None:
    connector = FakePullConnector(values={"humidity": 40})
    entity.install_connector("pull", connector)
    await entity.get("humidity", refresh="force")

    clock.advance(minutes=2)
    await entity.get("humidity", refresh="ifstale")
    assert connector.calls == ["get_humidity"]

    await entity.get("humidity", refresh="ifstale", stale_threshold=timedelta(minutes=1))
    assert connector.calls == ["get_humidity", "get_humidity"]


@pytest.mark.asyncio
async def test_zero_threshold_refreshes_any_aged_value(entity: Entity, clock: FakeClock) -> None:
    connector = FakePullConnector(values={"temperature": 21})
    entity.install_connector("pull", connector)
    entity.put("temperature", 20, "test")

    clock.advance(seconds=10)
    reading = await entity.get("temperature", refresh="ifstale", stale_threshold=timedelta(0))

    assert connector.calls == ["get_temperature"]
    assert reading.value == 21


@pytest.mark.asyncio
async def test_force_always_refreshes(entity: Entity) -> None:
    connector = FakePullConnector(values={"version": "1.0"})
    entity.install_connector("pull", connector)

    await entity.get("version", refresh="force")
    connector.values["version"] = "1.1"
    reading = await entity.get("version", refresh="force")

    assert reading.value == "1.1"
    assert connector.calls == ["get_version", "get_version"]


@pytest.mark.asyncio
async def test_unknown_key_raises_before_any_refresh(entity: Entity) -> None:
    connector = FakePullConnector()
    entity.install_connector("pull", connector)

    with pytest.raises(StigaUnknownKeyError):
        await entity.get("pressure", refresh="force")
    assert connector.calls == []


@pytest.mark.asyncio
async def test_failed_refresh_serves_cached_value(entity: Entity, caplog: pytest.LogCaptureFixture) -> None:
    entity.put("temperature", 19, "test")
    stamped = (await entity.get("temperature")).updated_at
    entity.install_connector("loader", FakeLoader(error=StigaTransportError("offline")))

    with caplog.at_level(logging.WARNING, logger="pystiga.entity"):
        reading = await entity.get("temperature", refresh="force")

    assert reading.value == 19
    assert reading.updated_at == stamped
    assert any("refresh of temperature failed" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_update_propagates_load_failure(entity: Entity) -> None:
    entity.install_connector("loader", FakeLoader(error=StigaTransportError("offline")))

    with pytest.raises(StigaTransportError):
        await entity.update()


@pytest.mark.asyncio
async def test_load_runs_only_for_connectors_providing_the_key(entity: Entity) -> None:
    loader = FakeLoader()
    entity.install_connector("loader", loader)

    await entity.update("version")
    assert loader.loads == []

    await entity.update("name")
    await entity.update()
    assert loader.loads == [IDENTITY, IDENTITY]


@pytest.mark.asyncio
async def test_full_update_fetches_batch_keys_not_their_members(entity: Entity) -> None:
    connector = FakePullConnector(values={"status_all": {"temperature": 20}, "version": "2.0"})
    entity.install_connector("pull", connector)

    await entity.update()

    assert connector.calls == ["get_status_all", "get_version"]
    assert (await entity.get("status_all")).value == {"temperature": 20}
    assert (await entity.get("version")).value == "2.0"


@pytest.mark.asyncio
async def test_fetch_error_is_logged_and_skipped(entity: Entity, caplog: pytest.LogCaptureFixture) -> None:
    class BrokenConnector(FakePullConnector):
        async def get_version(self) -> Any:
            raise StigaTransportError("boom")

    broken = BrokenConnector()
    healthy = FakePullConnector(values={"version": "3.0"})
    entity.install_connector("broken", broken)
    entity.install_connector("healthy", healthy)

    with caplog.at_level(logging.ERROR, logger="pystiga.state.coordinator"):
        await entity.update("version")

    assert (await entity.get("version")).value == "3.0"
    assert len([r for r in caplog.records if r.name == "pystiga.state.coordinator"]) == 1


@pytest.mark.asyncio
async def test_pushing_connector_result_is_not_stored_twice(entity: Entity) -> None:
    connector = FakePushConnector()
    entity.install_connector("mqtt", connector)

    reading = await entity.get("version", refresh="force")

    assert connector.calls == 1
    assert reading.value == "pushed"


@pytest.mark.asyncio
async def test_composite_ifstale_refreshes_batch_key_only(entity: Entity, clock: FakeClock) -> None:
    connector = FakePullConnector(values={"status_all": {"t": 1}})
    entity.install_connector("pull", connector)

    reading = await entity.get_composite("status_all", refresh="ifstale")
    assert connector.calls == ["get_status_all"]
    assert reading.values == {"temp": None, "hum": None}
    assert reading.updated_at is None

    entity.put("temperature", 20, "test")
    entity.put("humidity", 40, "test")
    await entity.get_composite("status_all", refresh="ifstale")
    assert connector.calls == ["get_status_all"]

    clock.advance(seconds=90)
    reading = await entity.get_composite("status_all", refresh="ifstale")
    assert connector.calls == ["get_status_all", "get_status_all"]
    assert reading["temp"] == 20


@pytest.mark.asyncio
async def test_pulled_batch_result_fills_member_keys(entity: Entity) -> None:
    connector = FakePullConnector(values={"status_all": {"temperature": 21, "humidity": 51, "noise": 3}})
    entity.install_connector("pull", connector)

    await entity.update()
    first = await entity.get_composite("status_all", refresh="ifstale")
    second = await entity.get_composite("status_all", refresh="ifstale")

    assert connector.calls == ["get_status_all", "get_version"]
    assert first.values == {"temp": 21, "hum": 51}
    assert first.updated_at is not None
    assert second == first
    assert (await entity.get("temperature")).value == 21
