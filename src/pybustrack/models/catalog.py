"""Bus and route catalog models.

Catalog nodes in the remote store come in several shapes. Each shape is a
variant model; a node is parsed against the variants in a fixed order and
the first match decides the display name:

Buses
    ``{"name": "<str>"}`` → that name; a bare string → the string;
    anything else → the key.
Routes
    ``{"name": "<str>"}`` → that name; ``{"routeName": "<str>"}`` → that
    name; ``{"stop_1": {...}, "stop_3": {...}}`` →
    ``"Route <KEY>: <first stop> → <last stop>"``; anything else → the key.

A catalog that is missing, empty or not an object falls back to the default
list for its kind.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError

from pybustrack._constants import DEFAULT_BUSES, DEFAULT_ROUTES
from pybustrack.models._base import TrackerBaseModel

_NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CatalogEntry(TrackerBaseModel):
    """Uniform ``{id, name}`` view of a bus or route."""

    id: str
    name: str


class _Variant(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    def display_name(self, key: str) -> str:
        raise NotImplementedError


class _Named(_Variant):
    name: _NonEmptyStr

    def display_name(self, key: str) -> str:
        return self.name


class _LegacyRouteNamed(_Variant):
    route_name: _NonEmptyStr = Field(alias="routeName")

    def display_name(self, key: str) -> str:
        return self.route_name


class _Stop(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str | None = None


class _StopsRoute(_Variant):
    first_stop: _Stop = Field(alias="stop_1")
    last_stop: _Stop = Field(alias="stop_3")

    def display_name(self, key: str) -> str:
        first = (self.first_stop.name or "").strip() or "Start"
        last = (self.last_stop.name or "").strip() or "End"
        return f"Route {key.upper()}: {first} → {last}"


class _BareName(_Variant):
    value: _NonEmptyStr

    def display_name(self, key: str) -> str:
        return self.value


_BUS_VARIANTS: tuple[type[_Variant], ...] = (_Named,)
_ROUTE_VARIANTS: tuple[type[_Variant], ...] = (_Named, _LegacyRouteNamed, _StopsRoute)


def _match_variant(value: Any, variants: Sequence[type[_Variant]]) -> _Variant | None:
    if isinstance(value, str):
        try:
            return _BareName.model_validate({"value": value})
        except ValidationError:
            return None
    if not isinstance(value, dict):
        return None
    for variant in variants:
        try:
            return variant.model_validate(value)
        except ValidationError:
            continue
    return None


def _as_mapping(data: Any) -> dict[str, Any] | None:
    # Array-like nodes (numeric keys) come back as lists with holes.
    if isinstance(data, list):
        return {str(index): item for index, item in enumerate(data) if item is not None}
    if isinstance(data, dict):
        return data
    return None


def _parse(data: Any, variants: Sequence[type[_Variant]], *, bare_strings: bool) -> list[CatalogEntry] | None:
    mapping = _as_mapping(data)
    if not mapping:
        return None
    entries: list[CatalogEntry] = []
    for raw_key, value in mapping.items():
        key = str(raw_key)
        if isinstance(value, str) and not bare_strings:
            variant = None
        else:
            variant = _match_variant(value, variants)
        name = variant.display_name(key) if variant is not None else key
        entries.append(CatalogEntry(id=key, name=name))
    return entries


def default_buses() -> list[CatalogEntry]:
    return [CatalogEntry(id=bus_id, name=name) for bus_id, name in DEFAULT_BUSES]


def default_routes() -> list[CatalogEntry]:
    return [CatalogEntry(id=route_id, name=name) for route_id, name in DEFAULT_ROUTES]


def parse_bus_catalog(data: Any) -> list[CatalogEntry]:
    """Parse the ``busIds`` node, falling back to :func:`default_buses`."""
    entries = _parse(data, _BUS_VARIANTS, bare_strings=True)
    return entries if entries is not None else default_buses()


def parse_route_catalog(data: Any) -> list[CatalogEntry]:
    """Parse the ``routes`` node, falling back to :func:`default_routes`."""
    entries = _parse(data, _ROUTE_VARIANTS, bare_strings=False)
    return entries if entries is not None else default_routes()
