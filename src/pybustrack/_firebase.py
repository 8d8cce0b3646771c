"""Firebase Realtime Database REST store.

Implements the :class:`~pybustrack.providers.RemoteStore` protocol on top of
the database's REST API:

* ``overwrite`` -> ``PUT <db>/<key>.json`` (replaces the whole node)
* ``read_once`` -> ``GET <db>/<path>.json``
* ``subscribe_value`` -> ``GET`` with ``Accept: text/event-stream``
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from pybustrack._redact import redact_for_log, redact_url
from pybustrack.exceptions import RemoteStoreError

_logger = logging.getLogger(__name__)

_STREAM_REFRESH_EVENTS = frozenset({"put", "patch"})
_STREAM_TERMINAL_EVENTS = frozenset({"cancel", "auth_revoked"})


class FirebaseRealtimeStore:
    """aiohttp client for a Firebase Realtime Database."""

    def __init__(
        self,
        database_url: str,
        http_session: aiohttp.ClientSession,
        *,
        auth_token: str | None = None,
        request_timeout: float = 15.0,
        reconnect_delay: float = 5.0,
    ) -> None:
        self._base_url = database_url.rstrip("/")
        self._http = http_session
        self._auth_token = auth_token
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._reconnect_delay = reconnect_delay
        self._streams: set[asyncio.Task[None]] = set()

    def _url(self, path: str) -> str:
        url = f"{self._base_url}/{path.strip('/')}.json"
        if self._auth_token:
            url = f"{url}?auth={self._auth_token}"
        return url

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = self._url(path)
        headers = {"content-type": "application/json; charset=UTF-8"}
        body = None if payload is None else json.dumps(payload, separators=(",", ":"))

        _logger.debug("%s %s body=%s", method, redact_url(url), redact_for_log(payload))

        try:
            async with self._http.request(method, url, data=body, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status // 100 != 2:
                    raise RemoteStoreError(
                        f"HTTP {resp.status} from {path}: {text[:200]}",
                        status_code=resp.status,
                        key=path,
                    )
        except RemoteStoreError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise RemoteStoreError(f"Request to {path} failed: {exc}", key=path) from exc

        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise RemoteStoreError(f"Invalid JSON from {path}: {text[:200]}", key=path) from exc

    async def overwrite(self, key: str, record: dict[str, Any]) -> None:
        await self._request("PUT", key, record)

    async def read_once(self, path: str) -> Any | None:
        return await self._request("GET", path)

    async def subscribe_value(self, path: str, on_change: Callable[[Any], None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self._stream(path, on_change), name=f"pybustrack-stream-{path}")
        self._streams.add(task)
        task.add_done_callback(self._streams.discard)
        return task

    async def unsubscribe(self, handle: Any) -> None:
        if not isinstance(handle, asyncio.Task) or handle.done():
            return
        handle.cancel()
        await asyncio.wait({handle})

    async def close(self) -> None:
        """Cancel all value streams."""
        for task in list(self._streams):
            await self.unsubscribe(task)

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    async def _stream(self, path: str, on_change: Callable[[Any], None]) -> None:
        while True:
            try:
                if not await self._stream_once(path, on_change):
                    return
            except (aiohttp.ClientError, TimeoutError, RemoteStoreError) as exc:
                _logger.warning("Value stream for %s interrupted: %s", path, exc)
            await asyncio.sleep(self._reconnect_delay)

    async def _stream_once(self, path: str, on_change: Callable[[Any], None]) -> bool:
        """Consume one streaming connection; ``False`` means do not reconnect."""
        url = self._url(path)
        headers = {"accept": "text/event-stream"}
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self._timeout.total)

        _logger.debug("STREAM %s", redact_url(url))
        async with self._http.get(url, headers=headers, timeout=timeout) as resp:
            if resp.status // 100 != 2:
                text = await resp.text()
                raise RemoteStoreError(
                    f"HTTP {resp.status} from {path}: {text[:200]}",
                    status_code=resp.status,
                    key=path,
                )

            event: str | None = None
            data_lines: list[str] = []
            async for raw_line in resp.content:
                line = raw_line.decode("utf-8").rstrip("\r\n")
                if line.startswith("event:"):
                    event = line[len("event:") :].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[len("data:") :].strip())
                elif not line:
                    if event is not None and not await self._dispatch(path, event, "\n".join(data_lines), on_change):
                        return False
                    event = None
                    data_lines = []
        return True

    async def _dispatch(self, path: str, event: str, data: str, on_change: Callable[[Any], None]) -> bool:
        if event in _STREAM_TERMINAL_EVENTS:
            _logger.warning("Value stream for %s ended by server: %s", path, event)
            return False
        if event not in _STREAM_REFRESH_EVENTS:
            return True

        try:
            message: Any = json.loads(data)
        except json.JSONDecodeError:
            message = None

        # A put at the root carries the complete value; anything else is a
        # partial update, so fetch the node again.
        if event == "put" and isinstance(message, dict) and message.get("path") == "/":
            value = message.get("data")
        else:
            value = await self.read_once(path)

        try:
            on_change(value)
        except Exception:
            _logger.debug("Value stream callback failed for %s", path, exc_info=True)
        return True
