"""The garage: registry of every mower and charging station on the account.

Each reload fetches ``/api/garage`` in bulk. An identity (MAC address)
seen for the first time gets a new entity with the garage installed on it
as connector ``"garage"``; an identity seen before keeps its entity object
and receives the new snapshot view through the garage's snapshot event.
Holders of an entity reference therefore always see current data.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pystiga._constants import GARAGE_ENDPOINT, GARAGE_RELATIONSHIPS, snapshot_event
from pystiga._transport import Transport
from pystiga.config import StigaConfig
from pystiga.entity import BASE_SCHEMA, DEVICE_SCHEMA, Entity, StigaBase, StigaDevice
from pystiga.exceptions import StigaError
from pystiga.models.garage import BaseSnapshot, DeviceSnapshot, GarageSnapshot, PackSnapshot
from pystiga.state.events import EventBus, Handler, Unsubscribe
from pystiga.state.store import _utcnow

_logger = logging.getLogger(__name__)

CONNECTOR_NAME = "garage"

_REGISTRY_KEYS = frozenset(BASE_SCHEMA.registry_keys) | frozenset(DEVICE_SCHEMA.registry_keys)


class StigaGarage:
    """Create-or-update registry for garage entities.

    The garage is also a connector: it provides the registry keys of both
    entity kinds and pushes snapshot views to the entities it created.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        config: StigaConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._transport = transport
        self._config = config or StigaConfig()
        self._clock = clock
        self._bus = EventBus()
        self._reload_lock = asyncio.Lock()
        self._snapshot = GarageSnapshot()
        self._loaded_at: datetime | None = None
        self._devices: dict[str, StigaDevice] = {}
        self._bases: dict[str, StigaBase] = {}

    def __repr__(self) -> str:
        return (
            f"StigaGarage(devices={len(self._devices)}, bases={len(self._snapshot.bases)}, "
            f"packs={len(self._snapshot.packs)})"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def reload(self) -> bool:
        """Fetch the garage and create or update its entities.

        Returns ``False`` on failure, in which case every existing entity
        and its cached state is left as it was.
        """
        try:
            payload = await self._transport.get_json(GARAGE_ENDPOINT, {"relationships": GARAGE_RELATIONSHIPS})
            snapshot = GarageSnapshot.from_payload(payload)
        except StigaError:
            _logger.error("garage: failed to load", exc_info=True)
            return False

        self._snapshot = snapshot
        self._loaded_at = self._clock()
        self._update_bases(snapshot)
        self._update_devices(snapshot)
        _logger.debug("garage: loaded %r", self)
        return True

    def destroy(self) -> None:
        """Tear down every entity this garage created."""
        for entity in [*self._bases.values(), *self._devices.values()]:
            entity.close()
        self._bus.clear()
        self._bases.clear()
        self._devices.clear()
        self._snapshot = GarageSnapshot()
        self._loaded_at = None

    @property
    def loaded_at(self) -> datetime | None:
        return self._loaded_at

    @property
    def snapshot(self) -> GarageSnapshot:
        return self._snapshot

    # ------------------------------------------------------------------
    # Connector surface
    # ------------------------------------------------------------------

    def provides(self, key: str) -> bool:
        return key in _REGISTRY_KEYS

    def subscribe(self, event: str, handler: Handler) -> Unsubscribe:
        return self._bus.subscribe(event, handler)

    async def load(self, identity: str) -> bool:
        """Reload unless the garage data is younger than the refresh interval."""
        async with self._reload_lock:
            if self._loaded_at is not None and self._clock() - self._loaded_at < self._config.garage_refresh:
                return True
            _logger.debug("garage: refreshing for %s", identity)
            return await self.reload()

    # ------------------------------------------------------------------
    # Create-or-update
    # ------------------------------------------------------------------

    def _entity_options(self) -> dict[str, Any]:
        return {"default_stale_threshold": self._config.stale_threshold, "clock": self._clock}

    def _update_bases(self, snapshot: GarageSnapshot) -> None:
        for view in snapshot.bases.values():
            mac_address = view.mac_address
            if not mac_address:
                continue
            if mac_address in self._bases:
                self._bus.emit(snapshot_event(mac_address), view)
                continue
            base = StigaBase(mac_address, **self._entity_options())
            self._bases[mac_address] = base
            base.install_connector(CONNECTOR_NAME, self, view)
            _logger.debug("garage: created new base %s", mac_address)

    def _update_devices(self, snapshot: GarageSnapshot) -> None:
        for view in snapshot.devices:
            mac_address = view.mac_address
            if not mac_address:
                continue
            if mac_address in self._devices:
                self._bus.emit(snapshot_event(mac_address), view)
                continue
            device = StigaDevice(mac_address, **self._entity_options())
            self._devices[mac_address] = device
            device.install_connector(CONNECTOR_NAME, self, view)
            _logger.debug("garage: created new device %s", mac_address)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_device(self, mac_address: str) -> StigaDevice | None:
        return self._devices.get(mac_address)

    def get_devices(self) -> list[StigaDevice]:
        return list(self._devices.values())

    def get_base(self, mac_address: str) -> StigaBase | None:
        return self._bases.get(mac_address)

    def get_bases(self) -> list[StigaBase]:
        return list(self._bases.values())

    def get_entities(self) -> list[Entity]:
        return [*self._devices.values(), *self._bases.values()]

    def _device_view(self, device: StigaDevice) -> DeviceSnapshot | None:
        for view in self._snapshot.devices:
            if view.mac_address == device.mac_address:
                return view
        return None

    def get_bases_for_device(self, device: StigaDevice) -> list[StigaBase]:
        """Bases the cloud associates with *device* (at most one today)."""
        view = self._device_view(device)
        if view is None or not view.base_uuid:
            return []
        base_view: BaseSnapshot | None = self._snapshot.bases.get(view.base_uuid)
        if base_view is None or not base_view.mac_address:
            return []
        base = self.get_base(base_view.mac_address)
        return [base] if base is not None else []

    def get_packs(self) -> list[PackSnapshot]:
        return list(self._snapshot.packs.values())

    def get_packs_for_device(self, device: StigaDevice) -> list[PackSnapshot]:
        view = self._device_view(device)
        if view is None:
            return []
        return [pack for pack in self._snapshot.packs.values() if pack.device_uuid == view.uuid]
