"""Local key-value persistence."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from pybustrack.exceptions import StorageError

_logger = logging.getLogger(__name__)


class MemoryKeyValueStore:
    """Process-local store; nothing survives a restart."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileKeyValueStore:
    """String values kept in a single JSON object on disk.

    Blocking file I/O runs in the default executor. Writes go to a sibling
    temporary file that atomically replaces the original, so a crash never
    leaves a half-written file behind. A missing or unreadable file starts
    an empty store.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _read_file(self) -> dict[str, str]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StorageError(f"Could not read {self._path}: {exc}") from exc

        try:
            data: Any = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            _logger.warning("Storage file %s is not valid UTF-8 JSON; starting empty", self._path)
            return {}
        if not isinstance(data, dict):
            _logger.warning("Storage file %s is not a JSON object; starting empty", self._path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_file(self, data: dict[str, str]) -> None:
        tmp = self._path.with_name(f"{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as exc:
            raise StorageError(f"Could not write {self._path}: {exc}") from exc

    async def _ensure_loaded(self) -> dict[str, str]:
        if self._data is None:
            loop = asyncio.get_running_loop()
            self._data = await loop.run_in_executor(None, self._read_file)
            _logger.debug("Loaded %d keys from %s", len(self._data), self._path)
        return self._data

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await self._ensure_loaded()
            return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._ensure_loaded()
            updated = {**data, key: value}
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._write_file, updated)
            self._data = updated
