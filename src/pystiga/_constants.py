"""Internal constants shared across the library."""

from datetime import timedelta

BASE_URL = "https://connectivity-production.stiga.com"
USER_AGENT = "pystiga"

GARAGE_ENDPOINT = "/api/garage"
GARAGE_RELATIONSHIPS = "base,connpack"
USER_ENDPOINT = "/api/user"

#: Fallback age after which an ``ifstale`` read refreshes a key that
#: declares no threshold of its own.
DEFAULT_STALE_THRESHOLD = timedelta(minutes=30)

#: Minimum interval between two identical status requests from one connector.
STATUS_REQUEST_INTERVAL = timedelta(seconds=1)

# ------------------------------------------------------------------
# Entity event names
# ------------------------------------------------------------------

EVENT_CHANGED = "changed"
EVENT_CONNECTOR_INSTALLED = "connector_installed"
EVENT_CONNECTOR_UNINSTALLED = "connector_uninstalled"

# Full-snapshot event published by connectors, scoped to one identity.
_SNAPSHOT_EVENT_PREFIX = "snapshot/"


def snapshot_event(identity: str) -> str:
    """Return the identity-scoped full-snapshot event name."""
    return f"{_SNAPSHOT_EVENT_PREFIX}{identity}"
