"""Test doubles for the tracking engine collaborators."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from pybustrack._local import LoggingAlertProvider, StaticPermissionProvider
from pybustrack._storage import MemoryKeyValueStore
from pybustrack.exceptions import RemoteStoreError
from pybustrack.providers import SubscriptionOptions
from pybustrack.tracking.session import TrackingSession


class FakeLocation:
    """Location provider driven by the test through :meth:`emit`."""

    def __init__(self, *, last_known: Any | None = None, fail_subscribe: bool = False) -> None:
        self.last_known = last_known
        self.fail_subscribe = fail_subscribe
        self.options: SubscriptionOptions | None = None
        self.unsubscribed: list[Any] = []
        self._callback: Callable[[Any], None] | None = None

    @property
    def subscribed(self) -> bool:
        return self._callback is not None

    async def subscribe(self, options: SubscriptionOptions, on_fix: Callable[[Any], None]) -> str:
        if self.fail_subscribe:
            raise RuntimeError("location services disabled")
        self.options = options
        self._callback = on_fix
        return "watch-1"

    async def unsubscribe(self, handle: Any) -> None:
        self.unsubscribed.append(handle)
        self._callback = None

    async def get_last_known_fix(self) -> Any | None:
        return self.last_known

    def emit(self, raw: Any) -> None:
        assert self._callback is not None
        self._callback(raw)


class FakeRemote:
    """In-memory remote store recording every overwrite."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(values or {})
        self.writes: list[tuple[str, dict[str, Any]]] = []
        self.fail_next = 0
        self.fail_reads = False
        self.subscriptions: dict[int, tuple[str, Callable[[Any], None]]] = {}
        self._next_handle = 0

    async def overwrite(self, key: str, record: dict[str, Any]) -> None:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise RemoteStoreError("HTTP 503 from remote", status_code=503, key=key)
        self.writes.append((key, record))
        self.values[key] = record

    async def read_once(self, path: str) -> Any | None:
        if self.fail_reads:
            raise RemoteStoreError("network unreachable", key=path)
        return self.values.get(path)

    async def subscribe_value(self, path: str, on_change: Callable[[Any], None]) -> int:
        self._next_handle += 1
        self.subscriptions[self._next_handle] = (path, on_change)
        return self._next_handle

    async def unsubscribe(self, handle: Any) -> None:
        self.subscriptions.pop(handle, None)

    def push(self, path: str, value: Any) -> None:
        for sub_path, callback in list(self.subscriptions.values()):
            if sub_path == path:
                callback(value)


class BlockingRemote(FakeRemote):
    """Remote whose overwrite waits until the test releases it."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def overwrite(self, key: str, record: dict[str, Any]) -> None:
        self.entered.set()
        await self.release.wait()
        await super().overwrite(key, record)


class Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def location() -> FakeLocation:
    return FakeLocation()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def storage() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def alerts() -> LoggingAlertProvider:
    return LoggingAlertProvider()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def make_session(
    location: FakeLocation,
    remote: FakeRemote,
    storage: MemoryKeyValueStore,
    alerts: LoggingAlertProvider,
    clock: Clock,
) -> Callable[..., TrackingSession]:
    def factory(**overrides: Any) -> TrackingSession:
        kwargs: dict[str, Any] = {
            "permissions": StaticPermissionProvider(True),
            "location": location,
            "storage": storage,
            "remote": remote,
            "alerts": alerts,
            "clock": clock,
        }
        kwargs.update(overrides)
        return TrackingSession(**kwargs)

    return factory


@pytest.fixture
def blocking_remote() -> BlockingRemote:
    return BlockingRemote()
