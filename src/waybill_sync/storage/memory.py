"""Dict-backed key-value store."""

from __future__ import annotations

import copy
from typing import Any


class InMemoryKeyValueStore:
    """In-process :class:`~waybill_sync.storage.protocols.KeyValueStore`.

    Values are deep-copied on the way in and out so callers can never
    mutate stored state by accident, matching a real serializing backend.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Any | None:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self) -> list[str]:
        return list(self._data)

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the whole store (synchronous, for scripts and tests)."""
        return copy.deepcopy(self._data)
