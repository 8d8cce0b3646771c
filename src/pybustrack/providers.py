"""Structural interfaces of the collaborators the tracking engine consumes.

Having protocols here makes it easy to pass test doubles while keeping the
shipped implementations (``FirebaseRealtimeStore``, ``MqttRetainedStore``,
``JsonFileKeyValueStore``, ...) concrete. The engine never depends on a
specific device, OS or backend.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from enum import StrEnum
from typing import Any, Protocol

from pybustrack._constants import FIX_INTERVAL_SECONDS


class LocationAccuracy(StrEnum):
    LOWEST = "lowest"
    LOW = "low"
    BALANCED = "balanced"
    HIGH = "high"
    HIGHEST = "highest"


@dataclasses.dataclass(frozen=True)
class SubscriptionOptions:
    """Options passed to :meth:`LocationProvider.subscribe`."""

    accuracy: LocationAccuracy = LocationAccuracy.HIGHEST
    time_interval_seconds: float = FIX_INTERVAL_SECONDS
    distance_interval_meters: float = 0.0


class PermissionProvider(Protocol):
    async def request_permission(self) -> bool:
        """Return ``True`` when location access is granted."""
        ...


class LocationProvider(Protocol):
    async def subscribe(self, options: SubscriptionOptions, on_fix: Callable[[Any], None]) -> Any:
        """Start delivering raw fixes to *on_fix*; return a subscription handle.

        *on_fix* may be invoked from any thread.
        """
        ...

    async def unsubscribe(self, handle: Any) -> None: ...

    async def get_last_known_fix(self) -> Any | None: ...


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class RemoteStore(Protocol):
    async def overwrite(self, key: str, record: dict[str, Any]) -> None:
        """Replace the whole value at *key* with *record*."""
        ...

    async def read_once(self, path: str) -> Any | None: ...

    async def subscribe_value(self, path: str, on_change: Callable[[Any], None]) -> Any: ...

    async def unsubscribe(self, handle: Any) -> None: ...


class AlertProvider(Protocol):
    async def haptic_warning(self) -> None: ...

    async def schedule_notification(self, title: str, body: str) -> None: ...
