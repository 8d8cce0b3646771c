"""Position fix and activity history entry models."""

from __future__ import annotations

import math
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pybustrack.ingestion.normalize import normalize_timestamp_seconds, safe_float
from pybustrack.models._base import TrackerBaseModel


def _speed_or_zero(value: Any) -> float:
    parsed = safe_float(value)
    if parsed is None or parsed < 0 or math.isinf(parsed):
        return 0.0
    return parsed


def _accuracy_or_unknown(value: Any) -> float | None:
    parsed = safe_float(value)
    if parsed is None or parsed < 0 or math.isinf(parsed):
        return None
    return parsed


def _timestamp_seconds(value: Any) -> Any:
    ts = normalize_timestamp_seconds(value)
    # Leave unparseable input in place so validation reports it.
    return int(ts) if ts is not None else value


class PositionFix(TrackerBaseModel):
    """One validated GPS observation.

    Parameters
    ----------
    latitude : float
        Signed decimal degrees in ``[-90, 90]``.
    longitude : float
        Signed decimal degrees in ``[-180, 180]``.
    speed : float
        Ground speed in m/s. Absent, negative or infinite readings become ``0``.
    accuracy : float or None
        Estimated error radius in meters, ``None`` when unknown.
    timestamp : int
        Epoch seconds. Not assumed to be monotonic across fixes.
    """

    latitude: float = Field(ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(ge=-180.0, le=180.0, validation_alias=AliasChoices("longitude", "lng", "lon"))
    speed: float = 0.0
    accuracy: float | None = None
    timestamp: int = Field(validation_alias=AliasChoices("timestamp", "time"))

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> Any:
        parsed = safe_float(value)
        return value if parsed is None else parsed

    @field_validator("speed", mode="before")
    @classmethod
    def _coerce_speed(cls, value: Any) -> float:
        return _speed_or_zero(value)

    @field_validator("accuracy", mode="before")
    @classmethod
    def _coerce_accuracy(cls, value: Any) -> float | None:
        return _accuracy_or_unknown(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        return _timestamp_seconds(value)


class ActivityEntry(TrackerBaseModel):
    """A trimmed :class:`PositionFix` kept in the rolling activity history.

    Serialized with the short ``lat``/``lng`` keys used by persisted logs;
    the long ``latitude``/``longitude`` names are accepted when loading.
    """

    latitude: float = Field(
        validation_alias=AliasChoices("lat", "latitude"),
        serialization_alias="lat",
    )
    longitude: float = Field(
        validation_alias=AliasChoices("lng", "longitude", "lon"),
        serialization_alias="lng",
    )
    speed: float = 0.0
    accuracy: float | None = None
    timestamp: int

    @field_validator("speed", mode="before")
    @classmethod
    def _coerce_speed(cls, value: Any) -> float:
        return _speed_or_zero(value)

    @field_validator("accuracy", mode="before")
    @classmethod
    def _coerce_accuracy(cls, value: Any) -> float | None:
        return _accuracy_or_unknown(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        return _timestamp_seconds(value)

    @classmethod
    def from_fix(cls, fix: PositionFix) -> ActivityEntry:
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            speed=fix.speed,
            accuracy=fix.accuracy,
            timestamp=fix.timestamp,
        )

    def to_storage(self) -> dict[str, Any]:
        """Dict form written to key-value persistence."""
        return self.model_dump(by_alias=True)
