"""Bounded, persisted activity history.

The history is process-wide: it outlives tracking sessions and survives
restarts through the key-value store. It is serialized as a JSON array of
:class:`~pybustrack.models.fix.ActivityEntry` dicts, most recent first.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from pybustrack._constants import ACTIVITY_HISTORY_LIMIT, STORAGE_KEY_ACTIVITY_LOG
from pybustrack.models.fix import ActivityEntry
from pybustrack.providers import KeyValueStore

_logger = logging.getLogger(__name__)


def prepend_entry(
    history: Sequence[ActivityEntry],
    entry: ActivityEntry,
    limit: int = ACTIVITY_HISTORY_LIMIT,
) -> list[ActivityEntry]:
    """Return a new history with *entry* first, truncated to *limit*."""
    return [entry, *history][:limit]


def encode_history(history: Sequence[ActivityEntry]) -> str:
    return json.dumps([entry.to_storage() for entry in history], separators=(",", ":"))


def decode_history(text: str | None, limit: int = ACTIVITY_HISTORY_LIMIT) -> list[ActivityEntry]:
    """Parse persisted history; anything unusable yields an empty list.

    Malformed individual entries are skipped rather than discarding the rest.
    """
    if not text:
        return []
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError:
        _logger.warning("Stored activity history is not valid JSON; starting empty")
        return []
    if not isinstance(data, list):
        _logger.warning("Stored activity history is not a list; starting empty")
        return []

    entries: list[ActivityEntry] = []
    for item in data:
        try:
            entries.append(ActivityEntry.model_validate(item))
        except ValidationError:
            _logger.debug("Skipping malformed history entry: %r", item)
    return entries[:limit]


class ActivityHistory:
    """Most-recent-first list of the last *limit* fixes, persisted on every update."""

    def __init__(
        self,
        storage: KeyValueStore,
        *,
        key: str = STORAGE_KEY_ACTIVITY_LOG,
        limit: int = ACTIVITY_HISTORY_LIMIT,
    ) -> None:
        self._storage = storage
        self._key = key
        self._limit = limit
        self._entries: list[ActivityEntry] = []

    @property
    def entries(self) -> list[ActivityEntry]:
        return list(self._entries)

    @property
    def limit(self) -> int:
        return self._limit

    async def load(self) -> list[ActivityEntry]:
        """Load the persisted history (once, at engine start)."""
        try:
            text = await self._storage.get(self._key)
        except Exception as exc:
            _logger.warning("Could not read activity history: %s", exc)
            _logger.debug("Activity history read failure", exc_info=True)
            text = None
        self._entries = decode_history(text, self._limit)
        _logger.debug("Loaded %d activity entries", len(self._entries))
        return self.entries

    async def record(self, entry: ActivityEntry) -> list[ActivityEntry]:
        """Prepend *entry*, trim, and persist the trimmed list.

        A failed persist is logged; the in-memory history keeps the update.
        """
        self._entries = prepend_entry(self._entries, entry, self._limit)
        try:
            await self._storage.set(self._key, encode_history(self._entries))
        except Exception as exc:
            _logger.warning("Could not persist activity history: %s", exc)
            _logger.debug("Activity history persist failure", exc_info=True)
        return self.entries
