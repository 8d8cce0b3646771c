"""Session distance/speed accumulation."""

from __future__ import annotations

from datetime import datetime

from pybustrack._geo import haversine_distance
from pybustrack.models.fix import PositionFix
from pybustrack.models.session import PreviousFix, SessionStats


def accumulate(
    stats: SessionStats,
    fix: PositionFix,
    previous: PreviousFix | None,
) -> tuple[SessionStats, PreviousFix]:
    """Fold *fix* into *stats*.

    Returns the new stats and the anchor for the next fix. The first fix of a
    session (no *previous*) contributes no distance. Timestamps are not
    consulted, so out-of-order fixes are accumulated like any other.
    """
    distance = stats.cumulative_distance_meters
    if previous is not None:
        distance += haversine_distance(previous.latitude, previous.longitude, fix.latitude, fix.longitude)

    average_speed = fix.speed if distance > 0 else 0.0
    new_stats = stats.model_copy(
        update={
            "cumulative_distance_meters": distance,
            "average_speed_meters_per_second": average_speed,
            "fix_count": stats.fix_count + 1,
        }
    )
    return new_stats, PreviousFix.from_fix(fix)


class SessionAccumulator:
    """Holds the stats and distance anchor of the current session."""

    def __init__(self) -> None:
        self._stats = SessionStats()
        self._previous: PreviousFix | None = None

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def previous(self) -> PreviousFix | None:
        return self._previous

    def reset(self, start_time: datetime) -> None:
        """Begin a new session at *start_time*."""
        self._stats = SessionStats.started(start_time)
        self._previous = None

    def clear(self) -> None:
        """Discard the session (back to the zero state)."""
        self._stats = SessionStats()
        self._previous = None

    def add(self, fix: PositionFix) -> SessionStats:
        self._stats, self._previous = accumulate(self._stats, fix, self._previous)
        return self._stats
