"""Data models for fixes, sessions, remote state and catalogs."""

from pybustrack.models._base import TrackerBaseModel
from pybustrack.models.catalog import (
    CatalogEntry,
    default_buses,
    default_routes,
    parse_bus_catalog,
    parse_route_catalog,
)
from pybustrack.models.fix import ActivityEntry, PositionFix
from pybustrack.models.remote import RemoteState
from pybustrack.models.session import PreviousFix, SessionStats, TrackingIdentity

__all__ = [
    "ActivityEntry",
    "CatalogEntry",
    "PositionFix",
    "PreviousFix",
    "RemoteState",
    "SessionStats",
    "TrackerBaseModel",
    "TrackingIdentity",
    "default_buses",
    "default_routes",
    "parse_bus_catalog",
    "parse_route_catalog",
]
