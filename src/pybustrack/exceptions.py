"""Custom exception hierarchy for pybustrack."""

from __future__ import annotations


class BusTrackError(Exception):
    """Base exception for all pybustrack errors."""


class TrackerConfigError(BusTrackError):
    """Invalid or missing configuration."""


class StorageError(BusTrackError):
    """Local key-value persistence failure (read, write or encode)."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class RemoteStoreError(BusTrackError):
    """Remote store failure (network, non-2xx, invalid JSON, broker error)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        key: str = "",
    ) -> None:
        self.status_code = status_code
        self.key = key
        super().__init__(message)


class TrackingStartError(BusTrackError):
    """A tracking session could not be started.

    The session stays idle when this (or a subclass) is raised from
    :meth:`pybustrack.tracking.session.TrackingSession.start`.
    """


class PermissionDeniedError(TrackingStartError):
    """Location permission has not been granted."""


class IdentityRequiredError(TrackingStartError):
    """No vehicle id is bound to the session."""


class LocationUnavailableError(TrackingStartError):
    """The location provider refused the subscription (e.g. GPS is off)."""


class IdentityLockedError(BusTrackError):
    """Vehicle/route selection was attempted while tracking.

    The identity binding is immutable for the lifetime of a session;
    stop tracking before selecting a different vehicle or route.
    """
