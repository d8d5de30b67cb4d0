"""Base class for live-telemetry connectors.

A push connector publishes values as events named after schema keys; the
entity it is attached to forwards each one into its attribute store.
Requests made through the connector (``get_*``, ``set_*``, ``send_*``) are
fire-and-wait: the request goes out, and the call resolves when the
matching response is published or :attr:`StigaConfig.response_timeout`
elapses.

Subclasses own the transport (MQTT in production) and only need to call
:meth:`PushConnector._publish` from their message handlers and
:meth:`PushConnector._expect` from their request methods.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar

from pystiga._constants import STATUS_REQUEST_INTERVAL, snapshot_event
from pystiga.config import StigaConfig
from pystiga.entity import Entity
from pystiga.exceptions import StigaConnectorError
from pystiga.state.events import EventBus, Handler, Unsubscribe

_logger = logging.getLogger(__name__)


class PushConnector:
    """Event-publishing connector bound to a single entity.

    A subclass sends the request inside :meth:`_expect` and publishes the
    answer from its message handler, which completes the wait::

        class MowerConnector(PushConnector):
            PROVIDES = frozenset({"status_all", "status_battery"})

            async def get_status_all(self):
                if not self._should_request("status_all"):
                    return None
                return await self._expect("status_all", lambda: self._broker.send("status"))

            def _on_status(self, status):
                self._publish("status_battery", status["battery"])
                self._publish("status_all", status)
    """

    PROVIDES: ClassVar[frozenset[str]] = frozenset()
    """Schema keys this connector can supply."""

    def __init__(
        self,
        entity: Entity,
        *,
        name: str = "mqtt",
        config: StigaConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entity = entity
        self._name = name
        self._config = config or StigaConfig()
        self._clock = clock
        self._bus = EventBus()
        self._waiters: dict[str, list[asyncio.Future[Any]]] = {}
        self._last_requests: dict[str, float] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def identity(self) -> str:
        return self._entity.identity

    def attach(self) -> None:
        """Install this connector on its entity."""
        self._entity.install_connector(self._name, self)

    def detach(self) -> None:
        """Uninstall from the entity and abandon pending requests."""
        if self._entity.has_connector(self._name) and self._entity.get_connector(self._name) is self:
            self._entity.uninstall_connector(self._name)
        for waiters in self._waiters.values():
            for future in waiters:
                if not future.done():
                    future.cancel()
        self._waiters.clear()
        self._bus.clear()

    # ------------------------------------------------------------------
    # Connector surface
    # ------------------------------------------------------------------

    def provides(self, key: str) -> bool:
        return key in self.PROVIDES

    def subscribe(self, event: str, handler: Handler) -> Unsubscribe:
        return self._bus.subscribe(event, handler)

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _publish(self, key: str, value: Any) -> None:
        """Push *value* for *key* to listeners and to anyone awaiting it."""
        self._bus.emit(key, value)
        self._resolve(key, value)

    def _publish_snapshot(self, view: Any) -> None:
        self._bus.emit(snapshot_event(self.identity), view)

    def _resolve(self, name: str, value: Any) -> int:
        """Complete every pending request waiting on *name*."""
        waiters = self._waiters.pop(name, [])
        resolved = 0
        for future in waiters:
            if not future.done():
                future.set_result(value)
                resolved += 1
        return resolved

    async def _expect(
        self,
        name: str,
        send: Callable[[], Awaitable[Any] | Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and wait for the response published as *name*.

        The waiter is registered before *send* runs so a fast response is
        never missed.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        self._waiters.setdefault(name, []).append(future)
        effective_timeout = timeout if timeout is not None else self._config.response_timeout
        try:
            if send is not None:
                sent = send()
                if inspect.isawaitable(sent):
                    await sent
            return await asyncio.wait_for(future, effective_timeout)
        except TimeoutError as exc:
            raise StigaConnectorError(
                f"Timeout waiting for '{name}' response",
                connector=self._name,
                operation=name,
            ) from exc
        finally:
            waiters = self._waiters.get(name)
            if waiters is not None:
                with contextlib.suppress(ValueError):
                    waiters.remove(future)
                if not waiters:
                    self._waiters.pop(name, None)

    def _should_request(self, request_key: str) -> bool:
        """Rate-limit identical status requests to one per interval."""
        now = self._clock()
        last = self._last_requests.get(request_key)
        if last is not None and now - last < STATUS_REQUEST_INTERVAL.total_seconds():
            _logger.debug(
                "%s %s: skipping duplicate request (%s) within %.1fs",
                self._name,
                self.identity,
                request_key,
                STATUS_REQUEST_INTERVAL.total_seconds(),
            )
            return False
        self._last_requests[request_key] = now
        return True
