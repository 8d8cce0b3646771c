"""Base model for pybustrack records.

Every record model inherits from :class:`TrackerBaseModel` which
provides:

* ``alias_generator=to_camel`` so snake_case fields serialize to the
  camelCase keys observers read (``busId``, ``routeId``).
* A ``model_validator(mode="before")`` that strips placeholder values
  (``None``, ``""``, ``"--"``, NaN) so the field default is used, or the
  field is reported missing when it is required.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

# Sentinel strings location providers and stores use for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan"})


class TrackerBaseModel(BaseModel):
    """Base for tracker records (fixes, history entries, remote state)."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        """Drop placeholder values from *values*."""
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_placeholder_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return TrackerBaseModel._clean_dict(values)
