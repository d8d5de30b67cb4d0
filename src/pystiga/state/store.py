"""Per-entity attribute cache.

Every write, whether it comes from a garage snapshot or from a live push,
goes through :meth:`AttributeStore.put`. Reads never perform I/O; deciding
whether to refresh first is the entity's job, using :meth:`is_stale`.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from pystiga._constants import DEFAULT_STALE_THRESHOLD, EVENT_CHANGED
from pystiga.exceptions import StigaUnknownKeyError
from pystiga.state.events import AttributeChange, EventBus
from pystiga.state.schema import AttributeSpec, EntitySchema

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class AttributeRecord:
    """Cached value of one key plus the static metadata it was declared with."""

    spec: AttributeSpec
    value: Any = None
    updated_at: datetime | None = None

    @property
    def key(self) -> str:
        return self.spec.key

    @property
    def stale_threshold(self) -> timedelta | None:
        return self.spec.stale_threshold

    @property
    def batched_by(self) -> str | None:
        return self.spec.batched_by

    @property
    def is_batch(self) -> bool:
        return self.spec.is_batch

    def updated(self, value: Any, at: datetime) -> AttributeRecord:
        """Return a copy holding *value*, stamped at *at*.

        Only ``value`` and ``updated_at`` change. The timestamp never moves
        backwards, even if the clock does.
        """
        updated_at = at if self.updated_at is None else max(at, self.updated_at)
        return dataclasses.replace(self, value=value, updated_at=updated_at)


@dataclass(frozen=True, slots=True)
class AttributeReading:
    value: Any
    updated_at: datetime | None


@dataclass(frozen=True, slots=True)
class CompositeReading:
    """Values of a composite view and the age of its most stale member."""

    values: Mapping[str, Any]
    updated_at: datetime | None

    def __getitem__(self, label: str) -> Any:
        return self.values[label]

    def get(self, label: str, default: Any = None) -> Any:
        return self.values.get(label, default)


class AttributeStore:
    """Keyed cache of attribute records for a single entity."""

    def __init__(
        self,
        identity: str,
        schema: EntitySchema,
        bus: EventBus,
        *,
        clock: Callable[[], datetime] = _utcnow,
        default_stale_threshold: timedelta = DEFAULT_STALE_THRESHOLD,
    ) -> None:
        self._identity = identity
        self._schema = schema
        self._bus = bus
        self._clock = clock
        self.default_stale_threshold = default_stale_threshold
        self._records: dict[str, AttributeRecord] = {spec.key: AttributeRecord(spec) for spec in schema}

    def record(self, key: str) -> AttributeRecord:
        try:
            return self._records[key]
        except KeyError:
            raise StigaUnknownKeyError(key, kind=self._schema.kind) from None

    def read(self, key: str) -> AttributeReading:
        record = self.record(key)
        return AttributeReading(value=record.value, updated_at=record.updated_at)

    def effective_threshold(self, key: str, stale_threshold: timedelta | None = None) -> timedelta:
        if stale_threshold is not None:
            return stale_threshold
        declared = self.record(key).stale_threshold
        return declared if declared is not None else self.default_stale_threshold

    def is_stale(self, key: str, stale_threshold: timedelta | None = None) -> bool:
        record = self.record(key)
        if record.updated_at is None:
            return True
        return self._clock() - record.updated_at > self.effective_threshold(key, stale_threshold)

    def put(self, key: str, value: Any, source: str) -> bool:
        """Store *value* for *key* and report whether it changed.

        ``changed`` and the key-scoped event are emitted only for a
        structurally different value; the timestamp is refreshed either way.
        """
        previous = self.record(key)
        old_value = previous.value
        self._records[key] = previous.updated(value, self._clock())
        changed = old_value != value
        if changed:
            self._bus.emit(EVENT_CHANGED, AttributeChange(key=key, value=value, old_value=old_value, source=source))
            self._bus.emit(key, value)
        _logger.debug(
            "%s %s: updated %s from %s [%s]",
            self._schema.kind,
            self._identity,
            key,
            source,
            "changed" if changed else "unchanged",
        )
        return changed

    def put_snapshot(self, view: Any, source: str) -> int:
        """Apply every registry field *view* carries; returns the number written."""
        written = 0
        for key in self._schema.registry_keys:
            value = getattr(view, key, None)
            if value is None:
                continue
            self.put(key, value, source)
            written += 1
        return written

    def read_composite(self, name: str) -> CompositeReading:
        composite = self._schema.composite(name)
        values: dict[str, Any] = {}
        oldest: datetime | None = None
        never_updated = False
        for label, key in composite.members.items():
            record = self._records[key]
            values[label] = record.value
            if record.updated_at is None:
                never_updated = True
            elif oldest is None or record.updated_at < oldest:
                oldest = record.updated_at
        return CompositeReading(values=values, updated_at=None if never_updated else oldest)

    def composite_is_stale(self, name: str, stale_threshold: timedelta | None = None) -> bool:
        composite = self._schema.composite(name)
        return any(self.is_stale(key, stale_threshold) for key in composite.members.values())
