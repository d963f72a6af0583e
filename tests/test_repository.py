from __future__ import annotations

import pytest

from waybill_sync.storage import InMemoryKeyValueStore, ListQuery, RepositoryRegistry, StorageAccess


def _registry() -> RepositoryRegistry:
    return RepositoryRegistry(
        InMemoryKeyValueStore(
            {
                "employees": [
                    {"id": "e1", "fullName": "Иванов И.И.", "position": "driver"},
                    {"id": "e2", "fullName": "Петров П.П.", "position": "mechanic"},
                    {"id": "e3", "fullName": "Сидоров С.С."},
                ],
                "appSettings": {"theme": "dark"},
            }
        )
    )


@pytest.mark.asyncio
async def test_list_filters_sorts_and_pages() -> None:
    repo = _registry().get("employees")

    filtered = await repo.list(ListQuery(filters={"fullName": "петров"}))
    assert [e["id"] for e in filtered.data] == ["e2"]

    ordered = await repo.list(ListQuery(sort_by="position", sort_dir="desc"))
    assert [e["id"] for e in ordered.data] == ["e2", "e1", "e3"]

    page = await repo.list(ListQuery(page=2, page_size=2))
    assert [e["id"] for e in page.data] == ["e3"]
    assert page.total == 3
    assert not page.has_more


@pytest.mark.asyncio
async def test_create_update_and_remove() -> None:
    repo = _registry().get("employees")

    created = await repo.create({"fullName": "Новиков"})
    assert created["id"]
    assert await repo.get_by_id(created["id"]) == created

    updated = await repo.update("e1", {"position": "senior driver"})
    assert updated["fullName"] == "Иванов И.И."
    assert updated["position"] == "senior driver"
    with pytest.raises(KeyError):
        await repo.update("missing", {})

    await repo.update_bulk([{"id": "e2", "fullName": "Петров"}, {"id": "e9", "fullName": "Новый"}, {"fullName": "x"}])
    assert (await repo.get_by_id("e2")) == {"id": "e2", "fullName": "Петров"}
    assert await repo.get_by_id("e9") is not None

    await repo.remove_bulk(["e1", "e9"])
    await repo.remove(created["id"])
    assert [e["id"] for e in await repo.all()] == ["e2", "e3"]


def test_registry_hands_out_one_repository_per_key() -> None:
    registry = _registry()
    assert registry.get("employees") is registry.get("employees")
    assert registry.get("employees") is not registry.get("vehicles")


@pytest.mark.asyncio
async def test_storage_access_distinguishes_singletons_and_entities() -> None:
    access = StorageAccess(_registry())

    assert await access.get_data_for_key("vehicles") == []
    assert await access.get_data_for_key("appSettings") == {"theme": "dark"}
    assert await access.get_data_for_key("seasonSettings") is None
    assert await access.inspect_key_count("employees") == 3
    assert await access.inspect_key_count("appSettings") == 1

    await access.delete_data_for_key("employees", ["e1"])
    assert [e["id"] for e in await access.get_data_for_key("employees")] == ["e2", "e3"]

    await access.delete_data_for_key("appSettings")
    assert await access.get_data_for_key("appSettings") is None


@pytest.mark.asyncio
async def test_absent_entity_key_can_be_told_apart_from_an_empty_one() -> None:
    access = StorageAccess(RepositoryRegistry(InMemoryKeyValueStore({"tires": []})))

    assert await access.get_data_for_key("counters") == []
    assert await access.get_data_for_key("counters", missing_as_empty=False) is None
    assert await access.get_data_for_key("tires", missing_as_empty=False) == []
