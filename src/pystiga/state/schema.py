"""Static per-kind attribute schemas.

A schema fixes, once per entity kind, which keys an entity stores, how
long each stays fresh, which keys are refreshed together by a batch key,
and which connector capabilities the kind understands. Entities never add
or remove keys after construction.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType

from pystiga.exceptions import StigaConfigError, StigaUnknownKeyError


@dataclass(frozen=True, slots=True)
class AttributeSpec:
    """Static description of one schema key."""

    key: str
    stale_threshold: timedelta | None = None
    batched_by: str | None = None
    is_batch: bool = False
    fetch: str | None = None
    """Connector capability that refreshes this key; ``None`` when the key is
    only ever supplied by snapshots (no connector call resolves it)."""
    registry: bool = False
    """Whether the key is populated from the garage snapshot views."""


def registry_attr(key: str) -> AttributeSpec:
    return AttributeSpec(key, registry=True)


def telemetry_attr(
    key: str,
    stale_threshold: timedelta | None = None,
    *,
    batched_by: str | None = None,
) -> AttributeSpec:
    return AttributeSpec(key, stale_threshold, batched_by=batched_by, fetch=f"get_{key}")


def batch_attr(key: str) -> AttributeSpec:
    return AttributeSpec(key, is_batch=True, fetch=f"get_{key}")


@dataclass(frozen=True, slots=True)
class Composite:
    """A read-only view over several keys refreshed through one batch key."""

    batch_key: str
    members: Mapping[str, str] = field(default_factory=dict)
    """Label in the composite view -> schema key."""


class EntitySchema:
    """Immutable key set and metadata for one entity kind."""

    def __init__(
        self,
        kind: str,
        attributes: Iterable[AttributeSpec],
        *,
        commands: Iterable[str] = (),
        composites: Mapping[str, Composite] | None = None,
    ) -> None:
        self.kind = kind
        specs: dict[str, AttributeSpec] = {}
        for spec in attributes:
            if spec.key in specs:
                raise StigaConfigError(f"{kind}: duplicate schema key '{spec.key}'")
            specs[spec.key] = spec
        self._specs = MappingProxyType(specs)

        for spec in specs.values():
            if spec.batched_by is None:
                continue
            batch = specs.get(spec.batched_by)
            if batch is None or not batch.is_batch:
                raise StigaConfigError(
                    f"{kind}: '{spec.key}' is batched by '{spec.batched_by}', which is not a batch key"
                )

        self._composites = MappingProxyType(dict(composites or {}))
        for name, composite in self._composites.items():
            batch = specs.get(composite.batch_key)
            if batch is None or not batch.is_batch:
                raise StigaConfigError(f"{kind}: composite '{name}' needs a batch key")
            missing = [key for key in composite.members.values() if key not in specs]
            if missing:
                raise StigaConfigError(f"{kind}: composite '{name}' reads unknown keys {missing}")

        fetches = {spec.fetch for spec in specs.values() if spec.fetch is not None}
        self._capabilities = frozenset(fetches | set(commands))

    def __contains__(self, key: object) -> bool:
        return key in self._specs

    def __iter__(self) -> Iterator[AttributeSpec]:
        return iter(self._specs.values())

    def __repr__(self) -> str:
        return f"EntitySchema(kind={self.kind!r}, keys={len(self._specs)})"

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(self._specs)

    @property
    def registry_keys(self) -> tuple[str, ...]:
        return tuple(key for key, spec in self._specs.items() if spec.registry)

    @property
    def capabilities(self) -> frozenset[str]:
        """Every capability name a connector of this kind may implement."""
        return self._capabilities

    @property
    def composites(self) -> Mapping[str, Composite]:
        return self._composites

    def spec(self, key: str) -> AttributeSpec:
        try:
            return self._specs[key]
        except KeyError:
            raise StigaUnknownKeyError(key, kind=self.kind) from None

    def composite(self, name: str) -> Composite:
        try:
            return self._composites[name]
        except KeyError:
            raise StigaUnknownKeyError(name, kind=self.kind) from None
