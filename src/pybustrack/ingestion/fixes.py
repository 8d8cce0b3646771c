"""Raw position fix normalization.

Location providers deliver fixes in a few shapes: a flat mapping
(``{"latitude": ..., "longitude": ...}`` or ``{"lat": ..., "lng": ...}``),
or a provider envelope with the reading nested under ``coords`` and the
timestamp at the top level. :func:`normalize_fix` turns any of them into a
validated :class:`~pybustrack.models.fix.PositionFix`, or rejects it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from pybustrack.ingestion.normalize import normalize_timestamp_seconds
from pybustrack.models.fix import PositionFix

_logger = logging.getLogger(__name__)

_TIMESTAMP_KEYS = ("timestamp", "time")


def _flatten(raw: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(raw)
    nested = raw.get("coords")
    if isinstance(nested, Mapping):
        merged.pop("coords")
        merged.update(nested)
    return merged


def _resolve_timestamp(values: dict[str, Any], clock: Callable[[], float]) -> int:
    for key in _TIMESTAMP_KEYS:
        ts = normalize_timestamp_seconds(values.get(key))
        if ts is not None:
            return int(ts)
    return int(clock())


def normalize_fix(raw: Any, *, clock: Callable[[], float] = time.time) -> PositionFix | None:
    """Validate and shape a raw fix.

    Returns ``None`` when the fix is rejected: not a mapping, or
    missing/invalid/out-of-range latitude or longitude. Missing speed becomes
    ``0``; missing accuracy stays ``None``; a missing timestamp defaults to
    ``clock()``.

    Pure apart from reading *clock*.
    """
    if isinstance(raw, PositionFix):
        return raw
    if not isinstance(raw, Mapping):
        _logger.debug("Rejected fix of type %s", type(raw).__name__)
        return None

    values = _flatten(raw)
    timestamp = _resolve_timestamp(values, clock)
    for key in _TIMESTAMP_KEYS:
        values.pop(key, None)
    values["timestamp"] = timestamp

    try:
        return PositionFix.model_validate(values)
    except ValidationError as exc:
        _logger.debug("Rejected fix: %s", exc.errors(include_url=False))
        return None
