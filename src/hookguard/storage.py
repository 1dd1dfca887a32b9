"""Key-value stores for lifecycle state."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    """Async string key-value store.

    increment() must be atomic within one process; counters read back
    through get() as decimal strings.
    """

    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def increment(self, key: str, amount: float = 1) -> float: ...


def _format_number(value: float) -> str:
    return str(int(value)) if value == int(value) else str(value)


class MemoryBackend:
    """Process-local storage.

    Lifecycle state disappears with the process, so this only suits
    tests and hosts that keep one guard alive for a whole session.
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def increment(self, key: str, amount: float = 1) -> float:
        value = float(self._data.get(key, 0)) + amount
        self._data[key] = _format_number(value)
        return value


class FileBackend:
    """JSON-document storage so state survives across hook processes.

    The host serializes invocations within a session, so a plain
    read-modify-write of one small document is enough.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except ValueError:
            logger.warning("State file %s is corrupt, starting fresh", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
        tmp.replace(self._path)

    async def get(self, key: str) -> str | None:
        return self._load().get(key)

    async def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    async def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    async def increment(self, key: str, amount: float = 1) -> float:
        data = self._load()
        value = float(data.get(key, 0)) + amount
        data[key] = _format_number(value)
        self._save(data)
        return value
