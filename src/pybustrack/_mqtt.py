"""MQTT retained-topic remote store.

Each remote key maps to the topic ``<prefix>/<key>``. A record is published
as a retained JSON message, so the broker keeps exactly one value per topic
and the last publisher wins, which matches the overwrite semantics of the
shared store. New subscribers receive the retained value immediately.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from pybustrack.config import MqttSettings
from pybustrack.exceptions import RemoteStoreError


def decode_retained_payload(payload: bytes) -> Any | None:
    """Decode a retained message; an empty payload means the value was cleared."""
    if not payload:
        return None
    return json.loads(payload.decode("utf-8"))


class MqttRetainedStore:
    """Threaded paho-mqtt client that delivers values onto an asyncio loop."""

    def __init__(
        self,
        settings: MqttSettings,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings
        self._logger = logger or logging.getLogger(__name__)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected: asyncio.Future[None] | None = None
        self._subscribers: dict[str, list[Callable[[Any], None]]] = {}

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is active."""
        return self._running

    def topic_for(self, key: str) -> str:
        prefix = self._settings.topic_prefix.strip("/")
        key = key.strip("/")
        return f"{prefix}/{key}" if prefix else key

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect to the broker and wait for the CONNACK."""
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._connected = loop.create_future()
        try:
            await loop.run_in_executor(None, self._start)
        except OSError as exc:
            raise RemoteStoreError(f"MQTT connect to {self._settings.host} failed: {exc}") from exc
        try:
            await asyncio.wait_for(asyncio.shield(self._connected), timeout=self._settings.publish_timeout)
        except TimeoutError as exc:
            await self.close()
            raise RemoteStoreError(f"MQTT broker {self._settings.host} did not acknowledge the connection") from exc

    async def close(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        await loop.run_in_executor(None, self._stop)

    def _start(self) -> None:
        self._stop()
        settings = self._settings
        self._logger.debug(
            "MQTT store start requested host=%s port=%s prefix=%s client_id=%s",
            settings.host,
            settings.port,
            settings.topic_prefix,
            settings.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=settings.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if settings.username:
            client.username_pw_set(settings.username, settings.password)
        if settings.tls:
            client.tls_set()

        client.on_connect = self._on_connect
        client.on_message = self._on_message
        client.on_disconnect = self._on_disconnect

        client.connect(settings.host, settings.port, keepalive=settings.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def _stop(self) -> None:
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _on_connect(self, c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
        if reason_code.value != 0:
            self._logger.warning("MQTT connect failed: %s", reason_code)
            return
        self._logger.debug("MQTT connected successfully reason=%s", reason_code)
        # Resubscribe after reconnects.
        for topic in list(self._subscribers):
            c.subscribe(topic, qos=1)
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._mark_connected)

    def _mark_connected(self) -> None:
        if self._connected is not None and not self._connected.done():
            self._connected.set_result(None)

    def _on_message(self, _c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        try:
            value = decode_retained_payload(msg.payload)
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)
            return
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._deliver, msg.topic, value)

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._running:
            self._logger.debug("MQTT disconnected: %s", reason_code)

    def _deliver(self, topic: str, value: Any) -> None:
        for callback in list(self._subscribers.get(topic, [])):
            try:
                callback(value)
            except Exception:
                self._logger.debug("MQTT value callback failed topic=%s", topic, exc_info=True)

    # ------------------------------------------------------------------
    # RemoteStore protocol
    # ------------------------------------------------------------------

    def _require_client(self) -> mqtt.Client:
        if self._client is None or not self._running:
            raise RemoteStoreError("MQTT store not connected. Call 'await store.connect()' first")
        return self._client

    async def overwrite(self, key: str, record: dict[str, Any]) -> None:
        client = self._require_client()
        topic = self.topic_for(key)
        payload = json.dumps(record, separators=(",", ":"))

        info = client.publish(topic, payload, qos=1, retain=True)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise RemoteStoreError(f"MQTT publish to {topic} failed: rc={info.rc}", key=key)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, info.wait_for_publish, self._settings.publish_timeout)
        except (RuntimeError, ValueError) as exc:
            raise RemoteStoreError(f"MQTT publish to {topic} failed: {exc}", key=key) from exc
        if not info.is_published():
            raise RemoteStoreError(f"MQTT publish to {topic} timed out", key=key)
        self._logger.debug("MQTT retained publish topic=%s", topic)

    async def subscribe_value(self, path: str, on_change: Callable[[Any], None]) -> tuple[str, Callable[[Any], None]]:
        client = self._require_client()
        topic = self.topic_for(path)
        self._subscribers.setdefault(topic, []).append(on_change)
        # The broker re-sends the retained value on every SUBSCRIBE.
        client.subscribe(topic, qos=1)
        return topic, on_change

    async def unsubscribe(self, handle: Any) -> None:
        topic, callback = handle
        callbacks = self._subscribers.get(topic)
        if not callbacks or callback not in callbacks:
            return
        callbacks.remove(callback)
        if not callbacks:
            del self._subscribers[topic]
            if self._client is not None:
                self._client.unsubscribe(topic)

    async def read_once(self, path: str) -> Any | None:
        """Return the retained value at *path*, or ``None`` if none arrives in time."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        def on_value(value: Any) -> None:
            if not future.done():
                future.set_result(value)

        handle = await self.subscribe_value(path, on_value)
        try:
            return await asyncio.wait_for(future, timeout=self._settings.publish_timeout)
        except TimeoutError:
            return None
        finally:
            await self.unsubscribe(handle)
