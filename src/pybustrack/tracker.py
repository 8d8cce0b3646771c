"""High-level async entry point wiring the engine to shipped collaborators."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from pybustrack._firebase import FirebaseRealtimeStore
from pybustrack._local import LoggingAlertProvider, StaticPermissionProvider
from pybustrack._mqtt import MqttRetainedStore
from pybustrack._storage import JsonFileKeyValueStore
from pybustrack.catalog import CatalogService
from pybustrack.config import TrackerConfig
from pybustrack.exceptions import BusTrackError
from pybustrack.providers import (
    AlertProvider,
    KeyValueStore,
    LocationProvider,
    PermissionProvider,
    RemoteStore,
    SubscriptionOptions,
)
from pybustrack.tracking.session import FixOutcome, TrackingSession

_logger = logging.getLogger(__name__)


class BusTracker:
    """Owns a :class:`TrackingSession` and the resources behind it.

    Usage::

        async with BusTracker(config, location=provider) as tracker:
            routes = await tracker.catalog.fetch_routes()
            await tracker.session.select_vehicle("bus_001")
            await tracker.session.start()

    Collaborators that are not passed in are built from *config*: the
    remote store from ``remote_backend``, the key-value store from
    ``storage_path``. Permissions default to granted and alerts to the log.
    """

    def __init__(
        self,
        config: TrackerConfig,
        *,
        location: LocationProvider,
        permissions: PermissionProvider | None = None,
        alerts: AlertProvider | None = None,
        storage: KeyValueStore | None = None,
        remote: RemoteStore | None = None,
        http_session: aiohttp.ClientSession | None = None,
        on_fix_processed: Callable[[FixOutcome], None] | None = None,
    ) -> None:
        self._config = config
        self._location = location
        self._permissions = permissions
        self._alerts = alerts
        self._storage = storage
        self._remote = remote
        self._owns_remote = remote is None
        self._external_session = http_session is not None
        self._http_session = http_session
        self._on_fix_processed = on_fix_processed
        self._session: TrackingSession | None = None
        self._catalog: CatalogService | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BusTracker:
        config = self._config.validate()
        try:
            remote = self._remote if self._remote is not None else await self._build_remote(config)
            self._remote = remote
            self._session = TrackingSession(
                permissions=self._permissions or StaticPermissionProvider(),
                location=self._location,
                storage=self._storage or JsonFileKeyValueStore(config.storage_path),
                remote=remote,
                alerts=self._alerts or LoggingAlertProvider(),
                subscription_options=SubscriptionOptions(time_interval_seconds=config.fix_interval_seconds),
                accuracy_threshold=config.accuracy_alert_threshold,
                history_limit=config.history_limit,
                remote_key_template=config.remote_key_template,
                on_fix_processed=self._on_fix_processed,
            )
            self._catalog = CatalogService(remote)
            await self._session.initialize()
        except BaseException:
            await self._release()
            raise
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._session is not None:
            await self._session.stop()
        await self._release()

    async def _build_remote(self, config: TrackerConfig) -> RemoteStore:
        if config.remote_backend == "mqtt":
            store = MqttRetainedStore(config.mqtt)
            await store.connect()
            return store

        assert config.database_url is not None  # noqa: S101
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return FirebaseRealtimeStore(
            config.database_url,
            self._http_session,
            auth_token=config.auth_token,
            request_timeout=config.request_timeout,
        )

    async def _release(self) -> None:
        remote, owns_remote = self._remote, self._owns_remote
        if owns_remote:
            self._remote = None
        if owns_remote and isinstance(remote, FirebaseRealtimeStore | MqttRetainedStore):
            try:
                await remote.close()
            except Exception as exc:
                _logger.warning("Error closing remote store: %s", exc)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def _require_session(self) -> TrackingSession:
        if self._session is None:
            raise BusTrackError("Tracker not initialized. Use 'async with BusTracker(...) as tracker:'")
        return self._session

    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def session(self) -> TrackingSession:
        return self._require_session()

    @property
    def catalog(self) -> CatalogService:
        self._require_session()
        assert self._catalog is not None  # noqa: S101
        return self._catalog
