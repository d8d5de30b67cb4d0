"""Snapshot models for STIGA cloud resources."""

from pystiga.models._base import StigaResourceModel, StigaTimestamp, parse_stiga_timestamp
from pystiga.models.garage import BaseSnapshot, DeviceSnapshot, GarageSnapshot, GeoPosition, PackSnapshot

__all__ = [
    "BaseSnapshot",
    "DeviceSnapshot",
    "GarageSnapshot",
    "GeoPosition",
    "PackSnapshot",
    "StigaResourceModel",
    "StigaTimestamp",
    "parse_stiga_timestamp",
]
