"""Mower and charging-station entities.

Both kinds share one :class:`Entity` implementation; what differs between
them is the static :class:`~pystiga.state.schema.EntitySchema` they are
built with and a thin layer of named accessors.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, ClassVar

from pystiga._constants import DEFAULT_STALE_THRESHOLD
from pystiga.exceptions import StigaConfigError, StigaUnknownKeyError
from pystiga.state.connectors import CommandDispatcher, Connector, ConnectorRegistry
from pystiga.state.coordinator import UpdateCoordinator
from pystiga.state.events import EventBus, Handler, RefreshMode, Unsubscribe
from pystiga.state.schema import Composite, EntitySchema, batch_attr, registry_attr, telemetry_attr
from pystiga.state.store import AttributeReading, AttributeStore, CompositeReading, _utcnow

_logger = logging.getLogger(__name__)

_MINUTE = timedelta(minutes=1)

BASE_SCHEMA = EntitySchema(
    "base",
    [
        # Garage data
        registry_attr("uuid"),
        registry_attr("product_code"),
        registry_attr("serial_number"),
        registry_attr("firmware_version"),
        registry_attr("created_at"),
        # Live data
        telemetry_attr("version", timedelta(hours=24)),
        telemetry_attr("status_operation", _MINUTE, batched_by="status_all"),
        telemetry_attr("status_location", _MINUTE, batched_by="status_all"),
        telemetry_attr("status_network", 5 * _MINUTE, batched_by="status_all"),
        batch_attr("status_all"),
        telemetry_attr("led_setting", _MINUTE, batched_by="status_all"),
    ],
    commands=["set_led_setting"],
    composites={
        "status_all": Composite(
            "status_all",
            {
                "operation": "status_operation",
                "location": "status_location",
                "network": "status_network",
                "led": "led_setting",
            },
        )
    },
)

DEVICE_SCHEMA = EntitySchema(
    "device",
    [
        # Garage data
        registry_attr("uuid"),
        registry_attr("name"),
        registry_attr("broker_id"),
        registry_attr("product_code"),
        registry_attr("serial_number"),
        registry_attr("firmware_version"),
        registry_attr("device_type"),
        registry_attr("base_uuid"),
        registry_attr("is_enabled"),
        registry_attr("total_work_time"),
        registry_attr("last_position"),
        # Live data
        telemetry_attr("version", timedelta(hours=24)),
        telemetry_attr("status_operation", _MINUTE, batched_by="status_all"),
        telemetry_attr("status_battery", 5 * _MINUTE, batched_by="status_all"),
        telemetry_attr("status_mowing", _MINUTE, batched_by="status_all"),
        telemetry_attr("status_location", _MINUTE, batched_by="status_all"),
        telemetry_attr("status_network", 5 * _MINUTE, batched_by="status_all"),
        batch_attr("status_all"),
        telemetry_attr("position", _MINUTE),
        telemetry_attr("settings", 30 * _MINUTE),
        telemetry_attr("schedule_settings", 30 * _MINUTE),
        telemetry_attr("zone_settings", 30 * _MINUTE),
        telemetry_attr("zone_order", 30 * _MINUTE),
    ],
    commands=[
        "set_settings",
        "set_schedule_settings",
        "set_zone_settings",
        "set_zone_order",
        "send_start",
        "send_stop",
        "send_go_home",
        "send_calibrate_blades",
    ],
    composites={
        "status_all": Composite(
            "status_all",
            {
                "operation": "status_operation",
                "battery": "status_battery",
                "mowing": "status_mowing",
                "location": "status_location",
                "network": "status_network",
            },
        )
    },
)


class Entity:
    """A remote entity whose attributes are cached and refreshed on demand.

    Parameters
    ----------
    identity : str
        Stable hardware (MAC) address. Required.
    schema : EntitySchema or None
        Key set of this entity. Defaults to the class-level ``SCHEMA``.
    default_stale_threshold : timedelta
        Age after which an ``ifstale`` read refreshes a key that declares
        no threshold of its own.
    clock : callable
        Source of timezone-aware "now" timestamps.
    """

    SCHEMA: ClassVar[EntitySchema | None] = None

    def __init__(
        self,
        identity: str,
        schema: EntitySchema | None = None,
        *,
        default_stale_threshold: timedelta = DEFAULT_STALE_THRESHOLD,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        resolved = schema or self.SCHEMA
        if resolved is None:
            raise StigaConfigError(f"{type(self).__name__}: schema is required")
        if not identity:
            raise StigaConfigError(f"{resolved.kind}: identity (mac address) is required")
        self._identity = identity
        self._schema = resolved
        self._bus = EventBus()
        self._store = AttributeStore(
            identity,
            resolved,
            self._bus,
            clock=clock,
            default_stale_threshold=default_stale_threshold,
        )
        self._connectors = ConnectorRegistry(identity, resolved, self._store, self._bus)
        self._coordinator = UpdateCoordinator(identity, resolved, self._store, self._connectors)
        self._dispatcher = CommandDispatcher(identity, resolved, self._connectors)

    def __repr__(self) -> str:
        connectors = ",".join(self.connector_names()) or "none"
        return f"{type(self).__name__}(mac={self._identity!r}, connectors={connectors})"

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def mac_address(self) -> str:
        return self._identity

    @property
    def schema(self) -> EntitySchema:
        return self._schema

    @property
    def default_stale_threshold(self) -> timedelta:
        return self._store.default_stale_threshold

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, event: str, handler: Handler) -> Unsubscribe:
        """Listen to a key-scoped event, ``changed`` or a connector event."""
        return self._bus.subscribe(event, handler)

    # ------------------------------------------------------------------
    # Attribute access
    # ------------------------------------------------------------------

    async def get(
        self,
        key: str,
        *,
        refresh: RefreshMode | str | None = None,
        stale_threshold: timedelta | None = None,
    ) -> AttributeReading:
        """Read *key*, refreshing first when *refresh* asks for it.

        A failed refresh is logged and the cached value is returned with
        its old timestamp.
        """
        self._store.record(key)
        mode = RefreshMode(refresh) if refresh is not None else None
        if mode is RefreshMode.FORCE or (mode is RefreshMode.IF_STALE and self._store.is_stale(key, stale_threshold)):
            await self._refresh(key)
        return self._store.read(key)

    async def get_composite(
        self,
        name: str,
        *,
        refresh: RefreshMode | str | None = None,
        stale_threshold: timedelta | None = None,
    ) -> CompositeReading:
        """Read a composite view, refreshing at most its batch key."""
        composite = self._schema.composite(name)
        mode = RefreshMode(refresh) if refresh is not None else None
        if mode is RefreshMode.FORCE or (
            mode is RefreshMode.IF_STALE and self._store.composite_is_stale(name, stale_threshold)
        ):
            await self._refresh(composite.batch_key)
        return self._store.read_composite(name)

    def put(self, key: str, value: Any, source: str) -> bool:
        return self._store.put(key, value, source)

    async def update(self, key: str | None = None) -> None:
        """Refresh *key*, or every key in as few fetches as possible."""
        await self._coordinator.update(key)

    async def invoke(self, capability: str, *args: Any) -> Any:
        """Run a write or command on the first connector that succeeds."""
        return await self._dispatcher.invoke(capability, *args)

    async def _refresh(self, key: str) -> None:
        try:
            await self._coordinator.update(key)
        except Exception:
            _logger.warning(
                "%s %s: refresh of %s failed, serving cached value",
                self._schema.kind,
                self._identity,
                key,
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Connectors
    # ------------------------------------------------------------------

    def install_connector(self, name: str, connector: Connector, snapshot: Any = None) -> None:
        self._connectors.install(name, connector, snapshot)

    def uninstall_connector(self, name: str) -> None:
        self._connectors.uninstall(name)

    def has_connector(self, name: str) -> bool:
        return self._connectors.has_connector(name)

    def connector_names(self) -> list[str]:
        return self._connectors.connector_names()

    def get_connector(self, name: str) -> Any:
        return self._connectors.get(name)

    def is_connected(self) -> bool:
        return self._connectors.is_connected()

    def close(self) -> None:
        """Uninstall every connector and drop every listener."""
        self._connectors.uninstall_all()
        self._bus.clear()


class StigaBase(Entity):
    """Charging station."""

    SCHEMA = BASE_SCHEMA

    async def get_uuid(self, **options: Any) -> AttributeReading:
        return await self.get("uuid", **options)

    async def get_product_code(self, **options: Any) -> AttributeReading:
        return await self.get("product_code", **options)

    async def get_serial_number(self, **options: Any) -> AttributeReading:
        return await self.get("serial_number", **options)

    async def get_firmware_version(self, **options: Any) -> AttributeReading:
        return await self.get("firmware_version", **options)

    async def get_created_at(self, **options: Any) -> AttributeReading:
        return await self.get("created_at", **options)

    async def get_version(self, **options: Any) -> AttributeReading:
        return await self.get("version", **options)

    async def get_status_operation(self, **options: Any) -> AttributeReading:
        return await self.get("status_operation", **options)

    async def get_status_location(self, **options: Any) -> AttributeReading:
        return await self.get("status_location", **options)

    async def get_status_network(self, **options: Any) -> AttributeReading:
        return await self.get("status_network", **options)

    async def get_status_all(self, **options: Any) -> CompositeReading:
        return await self.get_composite("status_all", **options)

    async def get_led_setting(self, **options: Any) -> AttributeReading:
        return await self.get("led_setting", **options)

    async def set_led_setting(self, value: Any) -> Any:
        return await self.invoke("set_led_setting", value)

    async def get_setting(self, setting: str, **options: Any) -> AttributeReading:
        if setting != "led":
            raise StigaUnknownKeyError(setting, kind="base setting")
        return await self.get_led_setting(**options)

    async def set_setting(self, setting: str, value: Any) -> Any:
        if setting != "led":
            raise StigaUnknownKeyError(setting, kind="base setting")
        return await self.set_led_setting(value)


class StigaDevice(Entity):
    """Robotic mower."""

    SCHEMA = DEVICE_SCHEMA

    async def get_uuid(self, **options: Any) -> AttributeReading:
        return await self.get("uuid", **options)

    async def get_name(self, **options: Any) -> AttributeReading:
        return await self.get("name", **options)

    async def get_broker_id(self, **options: Any) -> AttributeReading:
        return await self.get("broker_id", **options)

    async def get_product_code(self, **options: Any) -> AttributeReading:
        return await self.get("product_code", **options)

    async def get_serial_number(self, **options: Any) -> AttributeReading:
        return await self.get("serial_number", **options)

    async def get_firmware_version(self, **options: Any) -> AttributeReading:
        return await self.get("firmware_version", **options)

    async def get_device_type(self, **options: Any) -> AttributeReading:
        return await self.get("device_type", **options)

    async def get_base_uuid(self, **options: Any) -> AttributeReading:
        return await self.get("base_uuid", **options)

    async def get_is_enabled(self, **options: Any) -> AttributeReading:
        return await self.get("is_enabled", **options)

    async def get_total_work_time(self, **options: Any) -> AttributeReading:
        return await self.get("total_work_time", **options)

    async def get_last_position(self, **options: Any) -> AttributeReading:
        return await self.get("last_position", **options)

    async def get_version(self, **options: Any) -> AttributeReading:
        return await self.get("version", **options)

    async def get_position(self, **options: Any) -> AttributeReading:
        return await self.get("position", **options)

    async def get_status_operation(self, **options: Any) -> AttributeReading:
        return await self.get("status_operation", **options)

    async def get_status_battery(self, **options: Any) -> AttributeReading:
        return await self.get("status_battery", **options)

    async def get_status_mowing(self, **options: Any) -> AttributeReading:
        return await self.get("status_mowing", **options)

    async def get_status_location(self, **options: Any) -> AttributeReading:
        return await self.get("status_location", **options)

    async def get_status_network(self, **options: Any) -> AttributeReading:
        return await self.get("status_network", **options)

    async def get_status_all(self, **options: Any) -> CompositeReading:
        return await self.get_composite("status_all", **options)

    # Settings

    async def get_settings(self, **options: Any) -> AttributeReading:
        return await self.get("settings", **options)

    async def set_settings(self, settings: Any) -> Any:
        return await self.invoke("set_settings", settings)

    async def get_schedule_settings(self, **options: Any) -> AttributeReading:
        return await self.get("schedule_settings", **options)

    async def set_schedule_settings(self, schedule_settings: Any) -> Any:
        return await self.invoke("set_schedule_settings", schedule_settings)

    async def get_zone_settings(self, zone: Any, **options: Any) -> AttributeReading:
        """Settings of a single zone, stamped with the age of the whole zone table."""
        reading = await self.get("zone_settings", **options)
        zones = reading.value
        value: Any = None
        if isinstance(zones, dict):
            value = zones.get(zone)
        elif isinstance(zones, (list, tuple)) and isinstance(zone, int) and 0 <= zone < len(zones):
            value = zones[zone]
        return AttributeReading(value=value, updated_at=reading.updated_at)

    async def set_zone_settings(self, zone_settings: Any) -> Any:
        return await self.invoke("set_zone_settings", zone_settings)

    async def get_zone_order(self, **options: Any) -> AttributeReading:
        return await self.get("zone_order", **options)

    async def set_zone_order(self, zone_order: Any) -> Any:
        return await self.invoke("set_zone_order", zone_order)

    # Commands

    async def send_start(self) -> Any:
        return await self.invoke("send_start")

    async def send_stop(self) -> Any:
        return await self.invoke("send_stop")

    async def send_go_home(self) -> Any:
        return await self.invoke("send_go_home")

    async def send_calibrate_blades(self) -> Any:
        return await self.invoke("send_calibrate_blades")
