"""High-level async client for the STIGA cloud."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from pystiga._constants import USER_ENDPOINT
from pystiga._transport import ServerTransport
from pystiga.config import StigaConfig
from pystiga.entity import StigaBase, StigaDevice
from pystiga.exceptions import StigaError
from pystiga.garage import StigaGarage

_logger = logging.getLogger(__name__)


class StigaClient:
    """Async client owning the HTTP session and the garage.

    Usage::

        async with StigaClient(StigaConfig.from_env()) as client:
            if await client.load():
                device, base = client.get_device_and_base_pair()
                reading = await device.get_name()

    Parameters
    ----------
    config : StigaConfig
        Client configuration.
    session : aiohttp.ClientSession or None
        Optional external session. If not provided, one is created and
        closed when the client exits.
    """

    def __init__(
        self,
        config: StigaConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: ServerTransport | None = None
        self._garage: StigaGarage | None = None

    async def __aenter__(self) -> StigaClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = ServerTransport(self._config, self._http_session)
        self._garage = StigaGarage(self._transport, config=self._config)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._garage is not None:
            self._garage.destroy()
            self._garage = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    @property
    def config(self) -> StigaConfig:
        return self._config

    @property
    def garage(self) -> StigaGarage:
        return self._require_garage()

    def _require_garage(self) -> StigaGarage:
        if self._garage is None:
            raise StigaError("Client not initialized. Use 'async with StigaClient(...) as client:'")
        return self._garage

    def _require_transport(self) -> ServerTransport:
        if self._transport is None:
            raise StigaError("Client not initialized. Use 'async with StigaClient(...) as client:'")
        return self._transport

    async def check_connection(self) -> bool:
        """Return ``True`` when the token is accepted by ``/api/user``."""
        transport = self._require_transport()
        try:
            await transport.get_json(USER_ENDPOINT)
        except StigaError:
            _logger.warning("Connection check failed", exc_info=True)
            return False
        return True

    async def load(self) -> bool:
        """Load the garage and make sure it holds a usable device/base pair.

        Returns ``False`` if the garage could not be fetched, holds no
        device, or the first device has no charging station.
        """
        garage = self._require_garage()
        if not await garage.reload():
            return False
        devices = garage.get_devices()
        if not devices:
            _logger.error("No device found in garage")
            return False
        if not garage.get_bases_for_device(devices[0]):
            _logger.error("No base found for device %s", devices[0].mac_address)
            return False
        return True

    def get_device_and_base_pair(self) -> tuple[StigaDevice, StigaBase] | None:
        """First device in the garage together with its base, if both exist."""
        garage = self._require_garage()
        for device in garage.get_devices():
            bases = garage.get_bases_for_device(device)
            if bases:
                return device, bases[0]
        return None
