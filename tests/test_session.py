from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from pybustrack._local import StaticPermissionProvider
from pybustrack._storage import MemoryKeyValueStore
from pybustrack.exceptions import (
    IdentityLockedError,
    IdentityRequiredError,
    LocationUnavailableError,
    PermissionDeniedError,
)
from pybustrack.models.session import SessionStats
from pybustrack.providers import LocationAccuracy
from pybustrack.tracking.session import FixOutcome, TrackingState

FIX_A = {"coords": {"latitude": 0.0, "longitude": 0.0, "speed": 5.0, "accuracy": 10.0}, "timestamp": 1_700_000_001_000}
FIX_B = {"coords": {"latitude": 0.001, "longitude": 0.0, "speed": 6.0, "accuracy": 10.0}, "timestamp": 1_700_000_008_000}


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


class _Collector:
    def __init__(self) -> None:
        self.outcomes: list[FixOutcome] = []

    def __call__(self, outcome: FixOutcome) -> None:
        self.outcomes.append(outcome)


class _RaisingPermissions:
    async def request_permission(self) -> bool:
        raise RuntimeError("permission dialog crashed")


async def _tracking_session(make_session: Callable[..., Any], **overrides: Any) -> tuple[Any, _Collector]:
    collector = _Collector()
    session = make_session(on_fix_processed=collector, **overrides)
    await session.initialize()
    await session.select_vehicle("bus_001")
    await session.start()
    return session, collector


@pytest.mark.asyncio
async def test_two_fixes_accumulate_publish_and_record(make_session, location, remote) -> None:
    session, collector = await _tracking_session(make_session)

    location.emit(FIX_A)
    location.emit(FIX_B)
    await _wait_until(lambda: len(collector.outcomes) == 2)

    stats = session.stats
    assert stats.cumulative_distance_meters == pytest.approx(111.19, abs=0.01)
    assert stats.average_speed_meters_per_second == 6.0
    assert stats.fix_count == 2
    assert [entry.timestamp for entry in session.history] == [1_700_000_008, 1_700_000_001]
    assert [key for key, _ in remote.writes] == ["buses/bus_001", "buses/bus_001"]
    assert remote.values["buses/bus_001"]["lat"] == 0.001
    assert remote.values["buses/bus_001"]["busId"] == "bus_001"
    assert session.last_fix is not None and session.last_fix.timestamp == 1_700_000_008

    await session.stop()


@pytest.mark.asyncio
async def test_subscription_uses_high_accuracy_seven_second_cadence(make_session, location) -> None:
    session, _ = await _tracking_session(make_session)

    assert location.options is not None
    assert location.options.accuracy is LocationAccuracy.HIGHEST
    assert location.options.time_interval_seconds == 7.0
    assert location.options.distance_interval_meters == 0.0

    await session.stop()


@pytest.mark.asyncio
async def test_fixes_from_another_thread_are_processed(make_session, location) -> None:
    session, collector = await _tracking_session(make_session)

    await asyncio.to_thread(location.emit, FIX_A)
    await _wait_until(lambda: len(collector.outcomes) == 1)

    assert session.stats.fix_count == 1
    await session.stop()


@pytest.mark.asyncio
async def test_start_resets_stats_and_stop_returns_to_zero_state(make_session, location, clock) -> None:
    session, collector = await _tracking_session(make_session)
    assert session.stats.start_time == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    location.emit(FIX_A)
    location.emit(FIX_B)
    await _wait_until(lambda: len(collector.outcomes) == 2)

    await session.stop()
    assert session.state is TrackingState.IDLE
    assert session.stats == SessionStats()
    assert location.unsubscribed == ["watch-1"]

    clock.now = 1_700_000_500.0
    await session.start()
    assert session.stats.cumulative_distance_meters == 0.0
    assert session.stats.fix_count == 0
    assert session.stats.start_time == datetime.fromtimestamp(1_700_000_500, tz=UTC)

    # History survives across sessions.
    assert len(session.history) == 2
    await session.stop()


@pytest.mark.asyncio
async def test_publish_failure_does_not_stop_the_pipeline(make_session, location, remote) -> None:
    remote.fail_next = 1
    session, collector = await _tracking_session(make_session)

    location.emit(FIX_A)
    location.emit(FIX_B)
    await _wait_until(lambda: len(collector.outcomes) == 2)

    first, second = collector.outcomes
    assert not first.publish.ok
    assert second.publish.ok
    assert session.stats.fix_count == 2
    assert len(session.history) == 2
    assert len(remote.writes) == 1
    assert session.is_tracking

    await session.stop()


@pytest.mark.asyncio
async def test_invalid_fixes_are_dropped(make_session, location) -> None:
    session, collector = await _tracking_session(make_session)

    location.emit({"latitude": 120.0, "longitude": 0.0})
    location.emit("garbage")
    location.emit(FIX_A)
    await _wait_until(lambda: len(collector.outcomes) == 1)

    assert session.stats.fix_count == 1
    assert len(session.history) == 1
    await session.stop()


@pytest.mark.asyncio
async def test_poor_accuracy_fix_alerts_and_is_still_published(make_session, location, remote, alerts) -> None:
    session, collector = await _tracking_session(make_session)

    location.emit({"latitude": 1.0, "longitude": 1.0, "accuracy": 80.0})
    await _wait_until(lambda: len(collector.outcomes) == 1)

    assert collector.outcomes[0].signal.degraded
    assert alerts.haptics == 1
    assert alerts.notifications == [{"title": "Poor GPS accuracy", "body": "Current accuracy: 80m"}]
    assert remote.values["buses/bus_001"]["accuracy"] == 80.0
    await session.stop()


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_fix_and_drops_queued_ones(make_session, location, blocking_remote) -> None:
    session, collector = await _tracking_session(make_session, remote=blocking_remote)

    location.emit(FIX_A)
    await asyncio.wait_for(blocking_remote.entered.wait(), timeout=1.0)
    location.emit(FIX_B)
    await asyncio.sleep(0)

    stop_task = asyncio.create_task(session.stop())
    await asyncio.sleep(0.01)
    assert not stop_task.done()
    assert session.state is TrackingState.IDLE

    blocking_remote.release.set()
    await asyncio.wait_for(stop_task, timeout=1.0)

    assert len(collector.outcomes) == 1
    assert len(blocking_remote.writes) == 1
    assert session.stats == SessionStats()


@pytest.mark.asyncio
async def test_fix_after_stop_is_a_no_op(make_session, location, remote) -> None:
    session, collector = await _tracking_session(make_session)
    await session.stop()

    assert await session.process_fix(FIX_A) is None
    assert collector.outcomes == []
    assert remote.writes == []
    assert session.stats == SessionStats()


@pytest.mark.asyncio
async def test_stop_is_idempotent(make_session) -> None:
    session = make_session()
    await session.stop()

    session, _ = await _tracking_session(make_session)
    await session.stop()
    await session.stop()

    assert session.state is TrackingState.IDLE


@pytest.mark.asyncio
async def test_start_while_tracking_is_a_no_op(make_session, location) -> None:
    session, _ = await _tracking_session(make_session)
    started_at = session.stats.start_time

    await session.start()

    assert session.is_tracking
    assert session.stats.start_time == started_at
    await session.stop()


@pytest.mark.asyncio
async def test_last_known_fix_is_processed_on_start(make_session, location, remote) -> None:
    location.last_known = FIX_A

    session, collector = await _tracking_session(make_session)

    assert len(collector.outcomes) == 1
    assert session.stats.fix_count == 1
    assert remote.values["buses/bus_001"]["timestamp"] == 1_700_000_001
    await session.stop()


@pytest.mark.asyncio
async def test_start_without_permission_stays_idle(make_session, location) -> None:
    session = make_session(permissions=StaticPermissionProvider(False))
    await session.initialize()
    await session.select_vehicle("bus_001")

    assert not session.permission_granted
    with pytest.raises(PermissionDeniedError):
        await session.start()

    assert session.state is TrackingState.IDLE
    assert not location.subscribed


@pytest.mark.asyncio
async def test_permission_request_error_counts_as_refusal(make_session) -> None:
    session = make_session(permissions=_RaisingPermissions())

    assert await session.request_permission() is False
    assert not session.permission_granted


@pytest.mark.asyncio
async def test_start_without_vehicle_stays_idle(make_session, location) -> None:
    session = make_session()
    await session.initialize()

    with pytest.raises(IdentityRequiredError, match="Please select a bus ID before starting tracking"):
        await session.start()

    assert session.state is TrackingState.IDLE
    assert not location.subscribed


@pytest.mark.asyncio
async def test_subscription_failure_stays_idle(make_session, location) -> None:
    location.fail_subscribe = True
    session = make_session()
    await session.initialize()
    await session.select_vehicle("bus_001")

    with pytest.raises(LocationUnavailableError):
        await session.start()

    assert session.state is TrackingState.IDLE
    assert session.stats == SessionStats()


@pytest.mark.asyncio
async def test_identity_is_locked_while_tracking(make_session) -> None:
    session, _ = await _tracking_session(make_session)

    with pytest.raises(IdentityLockedError):
        await session.select_vehicle("bus_002")
    with pytest.raises(IdentityLockedError):
        await session.select_route("route_002")

    assert session.identity.vehicle_id == "bus_001"
    await session.stop()

    await session.select_vehicle("bus_002")
    assert session.identity.vehicle_id == "bus_002"


@pytest.mark.asyncio
async def test_selection_is_persisted_and_restored(make_session, storage) -> None:
    session = make_session()
    await session.initialize()
    await session.select_vehicle("bus_003")
    await session.select_route("route_004")

    assert storage.snapshot()["busId"] == json.dumps("bus_003")

    restored = make_session()
    await restored.initialize()

    assert restored.identity.vehicle_id == "bus_003"
    assert restored.identity.route_id == "route_004"


@pytest.mark.asyncio
async def test_legacy_plain_string_ids_are_restored(make_session) -> None:
    storage = MemoryKeyValueStore({"busId": "bus_007", "routeId": "null"})
    session = make_session(storage=storage)

    await session.initialize()

    assert session.identity.vehicle_id == "bus_007"
    assert session.identity.route_id is None


@pytest.mark.asyncio
async def test_history_is_restored_on_initialize(make_session, location, storage) -> None:
    session, collector = await _tracking_session(make_session)
    location.emit(FIX_A)
    await _wait_until(lambda: len(collector.outcomes) == 1)
    await session.stop()

    restored = make_session()
    await restored.initialize()

    assert [entry.timestamp for entry in restored.history] == [1_700_000_001]


@pytest.mark.asyncio
async def test_observer_errors_do_not_break_processing(make_session, location) -> None:
    def broken(_outcome: FixOutcome) -> None:
        raise ValueError("observer bug")

    session = make_session(on_fix_processed=broken)
    await session.initialize()
    await session.select_vehicle("bus_001")
    await session.start()

    outcome = await session.process_fix(FIX_A)

    assert outcome is not None
    assert session.stats.fix_count == 1
    await session.stop()


class _GatedLocation:
    """Location provider whose subscribe blocks until the test opens the gate."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()
        self.unsubscribed: list[Any] = []

    async def subscribe(self, options: Any, on_fix: Callable[[Any], None]) -> str:
        self.entered.set()
        await self.gate.wait()
        return "watch-late"

    async def unsubscribe(self, handle: Any) -> None:
        self.unsubscribed.append(handle)

    async def get_last_known_fix(self) -> Any | None:
        return None


@pytest.mark.asyncio
async def test_stop_during_start_releases_the_late_watch(make_session) -> None:
    location = _GatedLocation()
    session = make_session(location=location)
    await session.initialize()
    await session.select_vehicle("bus_001")

    starting = asyncio.create_task(session.start())
    await location.entered.wait()
    await session.stop()
    location.gate.set()
    await starting

    assert location.unsubscribed == ["watch-late"]
    assert session.state is TrackingState.IDLE
    assert session._worker is None  # type: ignore[attr-defined]
    assert session._subscription is None  # type: ignore[attr-defined]
