"""Shared remote record published for the active vehicle."""

from __future__ import annotations

from typing import Any

from pybustrack.models._base import TrackerBaseModel
from pybustrack.models.fix import PositionFix


class RemoteState(TrackerBaseModel):
    """Full-state overwrite stored under the vehicle's remote key.

    Serialized (``by_alias``) as
    ``{lat, lng, speed, accuracy, timestamp, busId, routeId}``.
    ``accuracy`` and ``routeId`` are ``null`` when unknown/unset.
    """

    lat: float
    lng: float
    speed: float = 0.0
    accuracy: float | None = None
    timestamp: int
    bus_id: str
    route_id: str | None = None

    @classmethod
    def from_fix(cls, fix: PositionFix, *, bus_id: str, route_id: str | None = None) -> RemoteState:
        return cls(
            lat=fix.latitude,
            lng=fix.longitude,
            speed=fix.speed,
            accuracy=fix.accuracy,
            timestamp=fix.timestamp,
            bus_id=bus_id,
            route_id=route_id,
        )

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
