"""pybustrack - Async bus live-tracking session and telemetry engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pybustrack")
except PackageNotFoundError:
    __version__ = "0+local"
from pybustrack.catalog import CatalogService
from pybustrack.config import MqttSettings, TrackerConfig
from pybustrack.exceptions import (
    BusTrackError,
    IdentityLockedError,
    IdentityRequiredError,
    LocationUnavailableError,
    PermissionDeniedError,
    RemoteStoreError,
    StorageError,
    TrackerConfigError,
    TrackingStartError,
)
from pybustrack.models import (
    ActivityEntry,
    CatalogEntry,
    PositionFix,
    RemoteState,
    SessionStats,
    TrackingIdentity,
)
from pybustrack.providers import LocationAccuracy, SubscriptionOptions
from pybustrack.tracker import BusTracker
from pybustrack.tracking import FixOutcome, TrackingSession, TrackingState

__all__ = [
    "__version__",
    "ActivityEntry",
    "BusTrackError",
    "BusTracker",
    "CatalogEntry",
    "CatalogService",
    "FixOutcome",
    "IdentityLockedError",
    "IdentityRequiredError",
    "LocationAccuracy",
    "LocationUnavailableError",
    "MqttSettings",
    "PermissionDeniedError",
    "PositionFix",
    "RemoteState",
    "RemoteStoreError",
    "SessionStats",
    "StorageError",
    "SubscriptionOptions",
    "TrackerConfig",
    "TrackerConfigError",
    "TrackingIdentity",
    "TrackingSession",
    "TrackingStartError",
    "TrackingState",
]
