"""pystiga - Async Python client for STIGA robotic mowers and charging stations."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pystiga")
except PackageNotFoundError:
    __version__ = "0+local"
from pystiga.client import StigaClient
from pystiga.config import StigaConfig
from pystiga.connector import PushConnector
from pystiga.entity import BASE_SCHEMA, DEVICE_SCHEMA, Entity, StigaBase, StigaDevice
from pystiga.exceptions import (
    StigaConfigError,
    StigaConnectorError,
    StigaError,
    StigaNoConnectorError,
    StigaReloadError,
    StigaTransportError,
    StigaUnknownKeyError,
)
from pystiga.garage import StigaGarage
from pystiga.models import BaseSnapshot, DeviceSnapshot, GarageSnapshot, GeoPosition, PackSnapshot
from pystiga.state.events import AttributeChange, RefreshMode, Unsubscribe
from pystiga.state.store import AttributeReading, CompositeReading

__all__ = [
    "__version__",
    "AttributeChange",
    "AttributeReading",
    "BASE_SCHEMA",
    "BaseSnapshot",
    "CompositeReading",
    "DEVICE_SCHEMA",
    "DeviceSnapshot",
    "Entity",
    "GarageSnapshot",
    "GeoPosition",
    "PackSnapshot",
    "PushConnector",
    "RefreshMode",
    "StigaBase",
    "StigaClient",
    "StigaConfig",
    "StigaConfigError",
    "StigaConnectorError",
    "StigaDevice",
    "StigaError",
    "StigaGarage",
    "StigaNoConnectorError",
    "StigaReloadError",
    "StigaTransportError",
    "StigaUnknownKeyError",
    "Unsubscribe",
]
