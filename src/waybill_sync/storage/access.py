"""Key-level read/write helpers that hide singleton vs. entity storage."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from waybill_sync._constants import INTERNAL_KEY_PREFIX, SINGLETON_KEYS, UNKNOWN_STORAGE_PREFIX
from waybill_sync.storage.protocols import KeyValueStore
from waybill_sync.storage.repository import RepositoryRegistry

_logger = logging.getLogger(__name__)


def is_repo_key(key: str) -> bool:
    """Return ``True`` if *key* holds an entity collection managed by a repository."""
    return key not in SINGLETON_KEYS and not key.startswith(UNKNOWN_STORAGE_PREFIX) and not key.startswith(INTERNAL_KEY_PREFIX)


def is_heavy_key(key: str) -> bool:
    """Audit/log-like keys that previews treat as zero-sized."""
    return "audit" in key.lower() or "Log" in key


class StorageAccess:
    """Read and write whole key values through the right layer."""

    def __init__(self, registry: RepositoryRegistry) -> None:
        self._registry = registry

    @property
    def store(self) -> KeyValueStore:
        return self._registry.store

    @property
    def registry(self) -> RepositoryRegistry:
        return self._registry

    async def get_data_for_key(self, key: str, *, skip_heavy: bool = False, missing_as_empty: bool = True) -> Any:
        """Current value of *key*.

        Entity keys return the full entity list (``[]`` when absent, or
        ``None`` with ``missing_as_empty=False`` so callers can tell an absent
        key from an empty collection); singleton keys return the stored value
        or ``None``.  With ``skip_heavy`` audit/log collections are reported
        as empty without being read.
        """
        if is_repo_key(key):
            if skip_heavy and is_heavy_key(key):
                return []
            raw = await self.store.get(key)
            return [] if raw is None and missing_as_empty else raw
        return await self.store.get(key)

    async def set_data_for_key(self, key: str, data: Any) -> None:
        if is_repo_key(key) and isinstance(data, list):
            await self._registry.get(key).replace_all(data)
        else:
            await self.store.set(key, data)

    async def delete_data_for_key(self, key: str, ids: Iterable[Any] | None = None) -> None:
        """Remove *ids* from an entity key, or the whole key when no ids are given."""
        id_list = list(ids) if ids is not None else []
        if is_repo_key(key) and id_list:
            await self._registry.get(key).remove_bulk(id_list)
        else:
            await self.store.delete(key)
        _logger.debug("Cleared %s (%s)", key, f"{len(id_list)} ids" if id_list else "whole key")

    async def inspect_key_count(self, key: str) -> int:
        """Rough size of a key: list length, mapping size, or 0/1 for scalars."""
        try:
            value = await self.get_data_for_key(key)
        except Exception:  # noqa: BLE001
            _logger.warning("Could not read %s while counting", key, exc_info=True)
            return 0
        if isinstance(value, (list, dict)):
            return len(value)
        return 0 if value is None else 1
