"""Tracking session state machine.

Owns the lifecycle (idle/tracking), the identity binding, the session stats
and the location subscription, and runs every fix through the pipeline::

    normalize -> accumulate -> record history -> evaluate signal -> publish

one fix at a time. Location callbacks may arrive from any thread; they are
handed to the event loop and queued for a single worker task per session.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pybustrack._constants import (
    ACCURACY_ALERT_THRESHOLD_M,
    ACTIVITY_HISTORY_LIMIT,
    REMOTE_KEY_TEMPLATE,
    STORAGE_KEY_BUS_ID,
    STORAGE_KEY_ROUTE_ID,
)
from pybustrack.exceptions import (
    IdentityLockedError,
    IdentityRequiredError,
    LocationUnavailableError,
    PermissionDeniedError,
)
from pybustrack.ingestion.fixes import normalize_fix
from pybustrack.models.fix import ActivityEntry, PositionFix
from pybustrack.models.session import SessionStats, TrackingIdentity
from pybustrack.providers import (
    AlertProvider,
    KeyValueStore,
    LocationProvider,
    PermissionProvider,
    RemoteStore,
    SubscriptionOptions,
)
from pybustrack.tracking.accumulator import SessionAccumulator
from pybustrack.tracking.history import ActivityHistory
from pybustrack.tracking.publisher import PublishResult, RemoteStatePublisher
from pybustrack.tracking.signal import SignalQualityMonitor, SignalReport

_logger = logging.getLogger(__name__)

_STOP = object()


class TrackingState(StrEnum):
    IDLE = "idle"
    TRACKING = "tracking"


@dataclasses.dataclass(frozen=True)
class FixOutcome:
    """Everything one accepted fix produced on its way through the pipeline."""

    fix: PositionFix
    stats: SessionStats
    history: list[ActivityEntry]
    signal: SignalReport
    publish: PublishResult


def _decode_stored_id(text: str | None) -> str | None:
    if text is None:
        return None
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        # Plain (non-JSON) strings written by older clients.
        return text
    if value is None:
        return None
    return str(value)


class TrackingSession:
    """Live tracking engine for one device.

    Usage::

        session = TrackingSession(
            permissions=permissions,
            location=location,
            storage=storage,
            remote=remote,
            alerts=alerts,
        )
        await session.initialize()
        await session.select_vehicle("bus_001")
        await session.start()
        ...
        await session.stop()
    """

    def __init__(
        self,
        *,
        permissions: PermissionProvider,
        location: LocationProvider,
        storage: KeyValueStore,
        remote: RemoteStore,
        alerts: AlertProvider,
        subscription_options: SubscriptionOptions | None = None,
        accuracy_threshold: float = ACCURACY_ALERT_THRESHOLD_M,
        history_limit: int = ACTIVITY_HISTORY_LIMIT,
        remote_key_template: str = REMOTE_KEY_TEMPLATE,
        clock: Callable[[], float] = time.time,
        on_fix_processed: Callable[[FixOutcome], None] | None = None,
    ) -> None:
        self._permissions = permissions
        self._location = location
        self._storage = storage
        self._options = subscription_options or SubscriptionOptions()
        self._clock = clock
        self._on_fix_processed = on_fix_processed

        self._history = ActivityHistory(storage, limit=history_limit)
        self._monitor = SignalQualityMonitor(alerts, threshold=accuracy_threshold)
        self._publisher = RemoteStatePublisher(remote, key_template=remote_key_template)
        self._accumulator = SessionAccumulator()

        self._state = TrackingState.IDLE
        self._identity = TrackingIdentity()
        self._permission_granted = False
        self._last_fix: PositionFix | None = None

        self._lock = asyncio.Lock()
        self._subscription: Any = None
        self._queue: asyncio.Queue[Any] | None = None
        self._worker: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def is_tracking(self) -> bool:
        return self._state is TrackingState.TRACKING

    @property
    def identity(self) -> TrackingIdentity:
        return self._identity

    @property
    def stats(self) -> SessionStats:
        return self._accumulator.stats

    @property
    def history(self) -> list[ActivityEntry]:
        return self._history.entries

    @property
    def last_fix(self) -> PositionFix | None:
        return self._last_fix

    @property
    def permission_granted(self) -> bool:
        return self._permission_granted

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Restore the last selection and history, then ask for permission."""
        self._identity = TrackingIdentity(
            vehicle_id=await self._read_stored_id(STORAGE_KEY_BUS_ID),
            route_id=await self._read_stored_id(STORAGE_KEY_ROUTE_ID),
        )
        await self._history.load()
        await self.request_permission()

    async def request_permission(self) -> bool:
        """Ask the permission provider; a refusal blocks :meth:`start`."""
        try:
            granted = bool(await self._permissions.request_permission())
        except Exception as exc:
            _logger.warning("Permission request failed: %s", exc)
            granted = False
        self._permission_granted = granted
        if not granted:
            _logger.warning("Location permission is required to track the bus")
        return granted

    # ------------------------------------------------------------------
    # Identity selection (idle only)
    # ------------------------------------------------------------------

    async def select_vehicle(self, vehicle_id: str | None) -> TrackingIdentity:
        self._ensure_idle()
        self._identity = TrackingIdentity(vehicle_id=vehicle_id, route_id=self._identity.route_id)
        await self._write_stored_id(STORAGE_KEY_BUS_ID, self._identity.vehicle_id)
        return self._identity

    async def select_route(self, route_id: str | None) -> TrackingIdentity:
        self._ensure_idle()
        self._identity = TrackingIdentity(vehicle_id=self._identity.vehicle_id, route_id=route_id)
        await self._write_stored_id(STORAGE_KEY_ROUTE_ID, self._identity.route_id)
        return self._identity

    def _ensure_idle(self) -> None:
        if self._state is not TrackingState.IDLE:
            raise IdentityLockedError("Stop tracking before selecting a different vehicle or route")

    async def _read_stored_id(self, key: str) -> str | None:
        try:
            return _decode_stored_id(await self._storage.get(key))
        except Exception as exc:
            _logger.warning("Could not read %s from storage: %s", key, exc)
            return None

    async def _write_stored_id(self, key: str, value: str | None) -> None:
        try:
            await self._storage.set(key, json.dumps(value))
        except Exception as exc:
            _logger.warning("Could not persist %s: %s", key, exc)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Enter the tracking state.

        Raises
        ------
        PermissionDeniedError
            Location permission has not been granted.
        IdentityRequiredError
            No vehicle is selected.
        LocationUnavailableError
            The location provider refused the subscription.
        """
        if self._state is TrackingState.TRACKING:
            return
        if not self._permission_granted:
            raise PermissionDeniedError("Location permission not granted")
        if not self._identity.is_bound:
            raise IdentityRequiredError("Please select a bus ID before starting tracking")

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()

        def on_fix(raw: Any) -> None:
            loop.call_soon_threadsafe(self._enqueue, queue, raw)

        self._accumulator.reset(datetime.fromtimestamp(self._clock(), tz=UTC))
        self._queue = queue
        self._state = TrackingState.TRACKING
        try:
            handle = await self._location.subscribe(self._options, on_fix)
        except Exception as exc:
            if self._queue is queue:
                self._state = TrackingState.IDLE
                self._queue = None
                self._accumulator.clear()
            _logger.warning("Failed to start location watch: %s", exc)
            raise LocationUnavailableError("Could not start location tracking. Is GPS on?") from exc

        if self._queue is not queue:
            # stop() ran while the watch was being set up.
            try:
                await self._location.unsubscribe(handle)
            except Exception as exc:
                _logger.warning("Error stopping tracking: %s", exc)
            return

        self._subscription = handle
        self._worker = loop.create_task(self._drain(queue), name=f"pybustrack-fixes-{self._identity.vehicle_id}")
        _logger.debug("Tracking started vehicle=%s route=%s", self._identity.vehicle_id, self._identity.route_id)

        try:
            last = await self._location.get_last_known_fix()
        except Exception:
            _logger.debug("Last known position unavailable", exc_info=True)
            return
        if last is not None:
            await self.process_fix(last)

    async def stop(self) -> None:
        """Leave the tracking state. Idempotent and never raises.

        The subscription is cancelled first; a fix already in the pipeline
        is allowed to finish, queued fixes are dropped, then the session
        stats return to the zero state.
        """
        self._state = TrackingState.IDLE

        handle, self._subscription = self._subscription, None
        if handle is not None:
            try:
                await self._location.unsubscribe(handle)
            except Exception as exc:
                _logger.warning("Error stopping tracking: %s", exc)

        queue, self._queue = self._queue, None
        worker, self._worker = self._worker, None
        if worker is not None and queue is not None:
            queue.put_nowait(_STOP)
            if worker is not asyncio.current_task():
                await asyncio.wait({worker})
                if not worker.cancelled() and worker.exception() is not None:
                    _logger.debug("Fix worker ended with an error", exc_info=worker.exception())

        async with self._lock:
            self._accumulator.clear()
        _logger.debug("Tracking stopped")

    # ------------------------------------------------------------------
    # Fix pipeline
    # ------------------------------------------------------------------

    def _enqueue(self, queue: asyncio.Queue[Any], raw: Any) -> None:
        # Late callbacks from a finished subscription are dropped.
        if queue is self._queue and self._state is TrackingState.TRACKING:
            queue.put_nowait(raw)

    async def _drain(self, queue: asyncio.Queue[Any]) -> None:
        while True:
            raw = await queue.get()
            if raw is _STOP:
                return
            try:
                await self.process_fix(raw)
            except Exception:
                _logger.exception("Unexpected error while processing fix")

    async def process_fix(self, raw: Any) -> FixOutcome | None:
        """Run one raw fix through the pipeline.

        Returns ``None`` when the fix is dropped: the session is idle or the
        normalizer rejected it. Collaborator failures inside the pipeline are
        logged and never raised.
        """
        if self._state is not TrackingState.TRACKING:
            return None
        async with self._lock:
            if self._state is not TrackingState.TRACKING:
                return None
            fix = normalize_fix(raw, clock=self._clock)
            if fix is None:
                return None
            return await self._run_pipeline(fix)

    async def _run_pipeline(self, fix: PositionFix) -> FixOutcome:
        identity = self._identity
        stats = self._accumulator.add(fix)
        self._last_fix = fix
        history = await self._history.record(ActivityEntry.from_fix(fix))
        signal = await self._monitor.evaluate(fix)
        publish = await self._publisher.publish(identity, fix)

        outcome = FixOutcome(fix=fix, stats=stats, history=history, signal=signal, publish=publish)
        if self._on_fix_processed is not None:
            try:
                self._on_fix_processed(outcome)
            except Exception:
                _logger.debug("on_fix_processed callback failed", exc_info=True)
        return outcome
