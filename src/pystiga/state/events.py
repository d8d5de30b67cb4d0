"""Entity events and the subscription bus that carries them.

Every subscription returns an :data:`Unsubscribe` handle. Whoever
subscribed keeps the handle and calls it to detach exactly that handler,
so tearing down never needs to re-derive listener identities.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class RefreshMode(StrEnum):
    FORCE = "force"
    IF_STALE = "ifstale"


class AttributeChange(BaseModel):
    """Digest emitted on ``changed`` when a stored value differs from the previous one."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: str
    value: Any = None
    old_value: Any = None
    source: str = Field(..., description="Name of the connector that supplied the value")


class ConnectorInstalled(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    connector: Any


class ConnectorUninstalled(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str


class EventBus:
    """Named-event fan-out with handle-based unsubscription."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def subscribe(self, event: str, handler: Handler) -> Unsubscribe:
        handlers = self._handlers.setdefault(event, [])
        handlers.append(handler)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                handlers.remove(handler)

        return _unsubscribe

    def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(payload)
            except Exception:
                _logger.error("Handler for event '%s' failed", event, exc_info=True)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def clear(self) -> None:
        for handlers in self._handlers.values():
            handlers.clear()
        self._handlers.clear()
