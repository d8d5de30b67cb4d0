"""Custom exception hierarchy for pystiga."""

from __future__ import annotations


class StigaError(Exception):
    """Base exception for all pystiga errors."""


class StigaConfigError(StigaError):
    """Invalid or missing configuration (e.g. an entity without identity)."""


class StigaUnknownKeyError(StigaError):
    """An attribute key or capability outside the entity schema was requested."""

    def __init__(self, key: str, *, kind: str = "") -> None:
        self.key = key
        self.kind = kind
        where = f" for {kind}" if kind else ""
        super().__init__(f"Unknown key '{key}'{where}")


class StigaNoConnectorError(StigaError):
    """No installed connector both exposed and succeeded at a capability."""

    def __init__(self, capability: str) -> None:
        self.capability = capability
        super().__init__(f"No connector available for {capability}")


class StigaConnectorError(StigaError):
    """A single connector call failed.

    The core catches and logs these; they never abort sibling connectors.
    """

    def __init__(
        self,
        message: str,
        *,
        connector: str = "",
        operation: str = "",
    ) -> None:
        self.connector = connector
        self.operation = operation
        super().__init__(message)


class StigaTransportError(StigaError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class StigaReloadError(StigaError):
    """The garage payload could not be turned into snapshot views."""
