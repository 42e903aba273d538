"""Base model and time helpers shared by pumpguard records.

Every record inherits from :class:`PumpBaseModel` which provides:

* ``frozen=True`` so updates go through ``model_copy(update=...)`` and a
  record read from a store can never be mutated behind its back.
* ``extra="ignore"`` so payloads carrying fields from newer firmware
  still validate.
* A ``model_validator(mode="before")`` that drops ``None`` values so the
  field default is used instead.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, model_validator


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: Any) -> Any:
    """Attach UTC to naive datetimes."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
"""Datetime that is always timezone-aware (naive input is taken as UTC)."""


class PumpBaseModel(BaseModel):
    """Base for pumpguard records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        use_enum_values=False,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        """Drop ``None`` values so field defaults apply."""
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if value is not None}

    def to_record(self) -> dict[str, Any]:
        """Return a JSON-compatible dict suitable for a store or cache."""
        return self.model_dump(mode="json")
