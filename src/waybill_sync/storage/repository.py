"""Entity repositories layered over array-valued keys."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

from waybill_sync.storage.protocols import KeyValueStore

_logger = logging.getLogger(__name__)

Entity = dict[str, Any]


def _as_text(value: Any) -> str:
    return "" if value is None else str(value).lower()


@dataclass
class ListQuery:
    """Paging/filtering options for :meth:`EntityRepository.list`.

    ``filters`` match case-insensitively on the string form of each field;
    empty filter values are ignored.
    """

    page: int = 1
    page_size: int = 20
    sort_by: str | None = None
    sort_dir: Literal["asc", "desc"] = "asc"
    filters: dict[str, Any] | None = None
    predicate: Callable[[Entity], bool] | None = None


@dataclass
class ListResult:
    data: list[Entity] = field(default_factory=list)
    page: int = 1
    page_size: int = 20
    total: int = 0
    has_more: bool = False


class EntityRepository:
    """CRUD access to the entity array stored under one key.

    The repository keeps no state between calls; every operation reads the
    array from the store and writes the full array back.
    """

    def __init__(self, store: KeyValueStore, key: str, *, id_field: str = "id") -> None:
        self._store = store
        self.key = key
        self.id_field = id_field

    async def all(self) -> list[Entity]:
        value = await self._store.get(self.key)
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    async def list(self, query: ListQuery | None = None) -> ListResult:
        query = query or ListQuery()
        data = await self.all()

        if query.predicate is not None:
            data = [item for item in data if query.predicate(item)]

        if query.filters:
            for name, expected in query.filters.items():
                if expected is None or expected == "":
                    continue
                needle = str(expected).lower()
                data = [item for item in data if needle in _as_text(item.get(name))]

        if query.sort_by:
            by = query.sort_by
            present = [item for item in data if item.get(by) is not None]
            missing = [item for item in data if item.get(by) is None]
            present.sort(key=lambda item: item[by], reverse=query.sort_dir == "desc")
            data = present + missing

        total = len(data)
        start = (query.page - 1) * query.page_size
        return ListResult(
            data=data[start : start + query.page_size],
            page=query.page,
            page_size=query.page_size,
            total=total,
            has_more=start + query.page_size < total,
        )

    async def get_by_id(self, entity_id: Any) -> Entity | None:
        for item in await self.all():
            if item.get(self.id_field) == entity_id:
                return item
        return None

    async def create(self, item: Entity) -> Entity:
        items = await self.all()
        obj = dict(item)
        if obj.get(self.id_field) is None:
            obj[self.id_field] = str(uuid.uuid4())
        items.append(obj)
        await self._store.set(self.key, items)
        return obj

    async def update(self, entity_id: Any, patch: Entity) -> Entity:
        items = await self.all()
        for pos, item in enumerate(items):
            if item.get(self.id_field) == entity_id:
                merged = {**item, **patch}
                items[pos] = merged
                await self._store.set(self.key, items)
                return merged
        raise KeyError(f"Not found: {self.key}#{entity_id}")

    async def update_bulk(self, updates: Iterable[Entity]) -> None:
        """Upsert entities by id; entities without an id are ignored."""
        items = await self.all()
        positions = {item.get(self.id_field): pos for pos, item in enumerate(items)}
        changed = False
        for entity in updates:
            entity_id = entity.get(self.id_field)
            if entity_id is None:
                continue
            pos = positions.get(entity_id)
            if pos is None:
                positions[entity_id] = len(items)
                items.append(dict(entity))
            else:
                items[pos] = dict(entity)
            changed = True
        if changed:
            await self._store.set(self.key, items)

    async def replace_all(self, items: list[Any]) -> None:
        await self._store.set(self.key, list(items))

    async def remove(self, entity_id: Any) -> None:
        await self.remove_bulk([entity_id])

    async def remove_bulk(self, ids: Iterable[Any]) -> None:
        doomed = set(ids)
        items = await self.all()
        kept = [item for item in items if item.get(self.id_field) not in doomed]
        if len(kept) != len(items):
            await self._store.set(self.key, kept)
            _logger.debug("Removed %d entities from %s", len(items) - len(kept), self.key)


class RepositoryRegistry:
    """Factory handing out one :class:`EntityRepository` per entity key.

    Instances are cached for the lifetime of the registry, which is scoped
    to whoever owns the storage backend.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._repos: dict[str, EntityRepository] = {}

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def get(self, key: str) -> EntityRepository:
        repo = self._repos.get(key)
        if repo is None:
            repo = EntityRepository(self._store, key)
            self._repos[key] = repo
        return repo
