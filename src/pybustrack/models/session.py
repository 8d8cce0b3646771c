"""Session-scoped models: identity binding, stats and the distance anchor."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import field_validator

from pybustrack.ingestion.normalize import safe_str
from pybustrack.models._base import TrackerBaseModel
from pybustrack.models.fix import PositionFix


class TrackingIdentity(TrackerBaseModel):
    """The (vehicle, optional route) pair a session is bound to.

    Blank ids normalize to ``None``. A session can only start once
    ``vehicle_id`` is set.
    """

    vehicle_id: str | None = None
    route_id: str | None = None

    @field_validator("vehicle_id", "route_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @property
    def is_bound(self) -> bool:
        return self.vehicle_id is not None


class PreviousFix(TrackerBaseModel):
    """Anchor for the next distance increment."""

    latitude: float
    longitude: float
    timestamp: int

    @classmethod
    def from_fix(cls, fix: PositionFix) -> PreviousFix:
        return cls(latitude=fix.latitude, longitude=fix.longitude, timestamp=fix.timestamp)


class SessionStats(TrackerBaseModel):
    """Cumulative statistics of one tracking session.

    ``average_speed_meters_per_second`` is the latest instantaneous speed
    once any distance has accumulated (``0`` before that), not a running
    mean.
    """

    cumulative_distance_meters: float = 0.0
    average_speed_meters_per_second: float = 0.0
    start_time: datetime | None = None
    fix_count: int = 0

    @field_validator("start_time")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @classmethod
    def started(cls, at: datetime) -> SessionStats:
        return cls(start_time=at)

    @property
    def is_moving(self) -> bool:
        return self.cumulative_distance_meters > 0
