"""Base model for STIGA cloud resources.

The garage endpoint speaks JSON:API: every item is a resource of the
form ``{"id": ..., "type": ..., "attributes": {...}}``. Every snapshot
model inherits from :class:`StigaResourceModel`, which provides:

* flattening of ``attributes`` into the model fields, keeping the
  resource ``id`` alongside them;
* dropping of ``None`` and blank-string values so the field default is
  used instead;
* a ``raw`` dict holding the original resource.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator


def parse_stiga_timestamp(value: Any) -> datetime | None:
    """Coerce an ISO-8601 string or epoch seconds to a UTC datetime."""
    if value is None:
        return value
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


StigaTimestamp = Annotated[datetime | None, BeforeValidator(parse_stiga_timestamp)]


class StigaResourceModel(BaseModel):
    """Base for JSON:API resources returned by the STIGA cloud."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict)
    """Original resource dict."""

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _flatten_resource(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        attributes = values.get("attributes")
        if not isinstance(attributes, dict):
            return values
        flattened = dict(attributes)
        if values.get("id") is not None:
            flattened["id"] = values["id"]
        cleaned = cls._clean_dict(flattened)
        cleaned.setdefault("raw", values)
        return cleaned
