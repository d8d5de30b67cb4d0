"""Snapshot views parsed from the ``/api/garage`` payload.

Each view is consumed once by :class:`pystiga.garage.StigaGarage` per
reload. Field names match the schema keys of the entity kind they feed,
so the entity can copy every field that is not ``None``.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from pystiga.exceptions import StigaReloadError
from pystiga.models._base import StigaResourceModel, StigaTimestamp


class GeoPosition(BaseModel):
    """Latitude/longitude pair."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class DeviceSnapshot(StigaResourceModel):
    """A robotic mower as listed in the garage (resource type ``devices``)."""

    uuid: str | None = None
    name: str = "Unnamed Device"
    mac_address: str | None = None
    product_code: str | None = None
    serial_number: str | None = None
    device_type: str | None = None
    firmware_version: str | None = None
    base_uuid: str | None = None
    broker_id: str | None = None
    last_position: GeoPosition | None = None
    total_work_time: float = 0
    """Accumulated work time as reported by the cloud."""
    is_enabled: bool = Field(default=False, validation_alias=AliasChoices("enabled", "is_enabled"))
    settings: dict[str, Any] | None = None
    """First entry of the device's cloud settings list."""

    @field_validator("last_position", mode="before")
    @classmethod
    def _parse_last_position(cls, value: Any) -> Any:
        if isinstance(value, GeoPosition) or value is None:
            return value
        if isinstance(value, dict):
            coordinates = value.get("coordinates")
            if isinstance(coordinates, (list, tuple)) and len(coordinates) >= 2:
                return {"latitude": coordinates[0], "longitude": coordinates[1]}
            if "latitude" in value and "longitude" in value:
                return value
        return None

    @field_validator("settings", mode="before")
    @classmethod
    def _first_settings(cls, value: Any) -> Any:
        if isinstance(value, list):
            return value[0] if value and isinstance(value[0], dict) else None
        return value

    @field_validator("total_work_time", mode="before")
    @classmethod
    def _coerce_work_time(cls, value: Any) -> Any:
        return value or 0


class BaseSnapshot(StigaResourceModel):
    """A charging station (included resource type ``OwnBases``)."""

    uuid: str | None = Field(default=None, validation_alias=AliasChoices("id", "uuid"))
    mac_address: str | None = None
    product_code: str | None = None
    serial_number: str | None = None
    firmware_version: str | None = None
    created_at: StigaTimestamp = None


class PackSnapshot(StigaResourceModel):
    """A connectivity pack (included resource type ``ConnPacks``)."""

    uuid: str | None = Field(default=None, validation_alias=AliasChoices("id", "uuid"))
    device_uuid: str | None = None
    status: str = "unknown"
    work_hours_used: float = 0
    work_hours_total: float = 0
    valid_from: StigaTimestamp = Field(default=None, validation_alias=AliasChoices("validity_from", "valid_from"))
    valid_to: StigaTimestamp = Field(default=None, validation_alias=AliasChoices("validity_to", "valid_to"))

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class GarageSnapshot(BaseModel):
    """Everything one garage reload returned, grouped by resource type."""

    model_config = ConfigDict(frozen=True)

    devices: list[DeviceSnapshot] = Field(default_factory=list)
    bases: dict[str, BaseSnapshot] = Field(default_factory=dict)
    """Bases keyed by uuid."""
    packs: dict[str, PackSnapshot] = Field(default_factory=dict)
    """Connectivity packs keyed by uuid."""

    @classmethod
    def from_payload(cls, payload: Any) -> GarageSnapshot:
        """Group a raw ``/api/garage`` response into snapshot views.

        Raises :class:`StigaReloadError` when the payload is not shaped like
        a JSON:API document.
        """
        if not isinstance(payload, dict):
            raise StigaReloadError(f"Garage payload is not an object: {type(payload).__name__}")
        data = payload.get("data") or []
        included = payload.get("included") or []
        if not isinstance(data, list) or not isinstance(included, list):
            raise StigaReloadError("Garage payload 'data'/'included' must be lists")

        try:
            devices = [
                DeviceSnapshot.model_validate(item)
                for item in data
                if isinstance(item, dict) and item.get("type") == "devices"
            ]
            bases: dict[str, BaseSnapshot] = {}
            packs: dict[str, PackSnapshot] = {}
            for item in included:
                if not isinstance(item, dict):
                    continue
                if item.get("type") == "OwnBases":
                    base = BaseSnapshot.model_validate(item)
                    if base.uuid:
                        bases[base.uuid] = base
                elif item.get("type") == "ConnPacks":
                    pack = PackSnapshot.model_validate(item)
                    if pack.uuid:
                        packs[pack.uuid] = pack
        except ValueError as exc:
            raise StigaReloadError(f"Garage payload could not be parsed: {exc}") from exc

        return cls(devices=devices, bases=bases, packs=packs)
