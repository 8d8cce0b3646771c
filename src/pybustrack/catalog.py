"""Bus and route catalogs read from the remote store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pybustrack._constants import BUS_CATALOG_PATH, ROUTE_CATALOG_PATH
from pybustrack.models.catalog import CatalogEntry, parse_bus_catalog, parse_route_catalog
from pybustrack.providers import RemoteStore

_logger = logging.getLogger(__name__)

CatalogCallback = Callable[[list[CatalogEntry]], None]


class CatalogService:
    """Reads the ``busIds`` and ``routes`` catalog nodes.

    One-shot fetches never raise: a failed read logs a warning and returns
    the built-in default catalog. Watches deliver a freshly parsed catalog
    on every change and skip updates whose value is not an object.
    """

    def __init__(
        self,
        remote: RemoteStore,
        *,
        bus_path: str = BUS_CATALOG_PATH,
        route_path: str = ROUTE_CATALOG_PATH,
    ) -> None:
        self._remote = remote
        self._bus_path = bus_path
        self._route_path = route_path

    async def fetch_buses(self) -> list[CatalogEntry]:
        return parse_bus_catalog(await self._read(self._bus_path))

    async def fetch_routes(self) -> list[CatalogEntry]:
        return parse_route_catalog(await self._read(self._route_path))

    async def watch_buses(self, on_change: CatalogCallback) -> Any:
        return await self._watch(self._bus_path, parse_bus_catalog, on_change)

    async def watch_routes(self, on_change: CatalogCallback) -> Any:
        return await self._watch(self._route_path, parse_route_catalog, on_change)

    async def unwatch(self, handle: Any) -> None:
        try:
            await self._remote.unsubscribe(handle)
        except Exception as exc:
            _logger.warning("Error stopping catalog watch: %s", exc)

    async def _read(self, path: str) -> Any:
        try:
            return await self._remote.read_once(path)
        except Exception as exc:
            _logger.warning("Error fetching %s, using defaults: %s", path, exc)
            return None

    async def _watch(
        self,
        path: str,
        parse: Callable[[Any], list[CatalogEntry]],
        on_change: CatalogCallback,
    ) -> Any:
        def handle_value(value: Any) -> None:
            if not isinstance(value, dict | list):
                _logger.debug("Ignoring non-object value at %s", path)
                return
            on_change(parse(value))

        return await self._remote.subscribe_value(path, handle_value)
