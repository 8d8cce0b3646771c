"""Local collaborators for running the engine off-device.

These back the replay script and the test-suite: a location provider that
plays recorded fixes, a permission provider with a fixed answer and an
alert provider that only logs.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from pybustrack.providers import SubscriptionOptions

_logger = logging.getLogger(__name__)


def load_fixes(path: str | os.PathLike[str]) -> list[Any]:
    """Read recorded fixes from a JSON array or a JSON-lines file."""
    text = Path(path).read_text(encoding="utf-8").strip()
    if not text:
        return []
    if text.startswith("["):
        data = json.loads(text)
        if not isinstance(data, list):
            raise ValueError(f"{path}: expected a JSON array of fixes")
        return data
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class ReplayLocationProvider:
    """Plays a fixed sequence of raw fixes into the subscription callback.

    Parameters
    ----------
    fixes
        Raw fix payloads, delivered in order.
    interval
        Seconds between fixes. ``None`` uses the interval requested in the
        subscription options; ``0`` replays as fast as possible.
    last_known
        Value returned by :meth:`get_last_known_fix`.
    """

    def __init__(
        self,
        fixes: Iterable[Any],
        *,
        interval: float | None = None,
        last_known: Any | None = None,
    ) -> None:
        self._fixes = list(fixes)
        self._interval = interval
        self._last_known = last_known
        self._tasks: set[asyncio.Task[None]] = set()
        self._delivered = 0

    @classmethod
    def from_file(cls, path: str | os.PathLike[str], **kwargs: Any) -> ReplayLocationProvider:
        return cls(load_fixes(path), **kwargs)

    @property
    def delivered(self) -> int:
        """Number of fixes handed to subscribers so far."""
        return self._delivered

    async def subscribe(self, options: SubscriptionOptions, on_fix: Callable[[Any], None]) -> asyncio.Task[None]:
        interval = options.time_interval_seconds if self._interval is None else self._interval
        task = asyncio.get_running_loop().create_task(self._play(on_fix, interval), name="pybustrack-replay")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def unsubscribe(self, handle: Any) -> None:
        if isinstance(handle, asyncio.Task) and not handle.done():
            handle.cancel()
            await asyncio.wait({handle})

    async def get_last_known_fix(self) -> Any | None:
        return self._last_known

    async def wait_finished(self) -> None:
        """Wait until every running replay has delivered its last fix."""
        if self._tasks:
            await asyncio.wait(set(self._tasks))

    async def _play(self, on_fix: Callable[[Any], None], interval: float) -> None:
        for raw in self._fixes:
            on_fix(raw)
            self._delivered += 1
            # Yield even with no interval so queued fixes get processed.
            await asyncio.sleep(max(interval, 0.0))
        _logger.debug("Replay finished after %d fixes", self._delivered)


class StaticPermissionProvider:
    def __init__(self, granted: bool = True) -> None:
        self.granted = granted

    async def request_permission(self) -> bool:
        return self.granted


class LoggingAlertProvider:
    """Alert provider that writes alerts to the log and remembers them."""

    def __init__(self) -> None:
        self.haptics = 0
        self.notifications: list[Mapping[str, str]] = []

    async def haptic_warning(self) -> None:
        self.haptics += 1

    async def schedule_notification(self, title: str, body: str) -> None:
        _logger.warning("%s: %s", title, body)
        self.notifications.append({"title": title, "body": body})
