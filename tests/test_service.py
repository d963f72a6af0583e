from __future__ import annotations

import json

import pytest

from waybill_sync import SyncConfig, SyncService
from waybill_sync.bus import BusMessage, Topic
from waybill_sync.models import AuditAction, UpdateMode
from waybill_sync.storage import InMemoryKeyValueStore


def _seeded_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(
        {
            "waybills": [
                {"id": "w1", "number": "0001", "date": "2023-11-02", "status": "Posted"},
                {"id": "w2", "number": "0002", "date": "2023-12-10", "status": "Completed"},
                {"id": "w3", "number": "0003", "date": "2023-12-11", "status": "Draft"},
                {"id": "w4", "number": "0004", "date": "2024-01-09", "status": "Posted"},
            ],
            "vehicles": [{"id": "v1", "plateNumber": "A100", "brand": "Kamaz"}],
            "appSettings": {"theme": "light", "printer": {"dpi": 300}},
        }
    )


@pytest.mark.asyncio
async def test_export_then_overwrite_import_reproduces_data() -> None:
    source = SyncService(_seeded_store())
    file_name, content = await source.export_document()
    assert file_name.startswith("waybill_backup_")

    target = SyncService(InMemoryKeyValueStore())
    bundle = target.load_bundle(content.encode("utf-8"))
    rows = await target.preview_import(bundle)
    for row in rows:
        row.set_mode(UpdateMode.OVERWRITE)
    await target.apply_import(rows, bundle)

    for key in ("waybills", "vehicles", "appSettings"):
        expected = json.dumps(await source.store.get(key), ensure_ascii=False)
        assert json.dumps(await target.store.get(key), ensure_ascii=False) == expected


@pytest.mark.asyncio
async def test_object_valued_keys_survive_export_into_an_empty_store() -> None:
    source = SyncService(InMemoryKeyValueStore({"counters": {"waybill": 42}, "dashboard_filters_v2": {"x": 1}}))
    _, content = await source.export_document()

    target = SyncService(InMemoryKeyValueStore())
    bundle = target.load_bundle(content)
    rows = await target.preview_import(bundle)
    counters_row = next(row for row in rows if row.key == "counters")
    assert counters_row.stats.incoming_count == 1
    assert counters_row.stats.new_count == 1
    for row in rows:
        row.set_mode(UpdateMode.OVERWRITE)
    result = await target.apply_import(rows, bundle)

    assert await target.store.get("counters") == {"waybill": 42}
    assert await target.store.get("dashboard_filters_v2") == {"x": 1}
    items = await target.load_audit_items(result.event_id)
    counters_item = next(item for item in items if item.storage_key == "counters")
    assert counters_item.action == AuditAction.INSERT
    assert not counters_item.before_exists

    await target.rollback_event(result.event_id)
    assert await target.store.get("counters") is None


@pytest.mark.asyncio
async def test_rollback_event_undoes_an_import() -> None:
    service = SyncService(_seeded_store())
    before = service.store.snapshot()
    bundle = service.load_bundle(
        json.dumps(
            {
                "vehicles": [{"id": "v1", "plateNumber": "A100BB"}, {"id": "v2", "plateNumber": "B200"}],
                "seasonSettings": {"type": "manual"},
            }
        )
    )
    result = await service.apply_import(await service.preview_import(bundle), bundle)
    assert await service.store.get("seasonSettings") == {"type": "manual"}

    report = await service.rollback_event(result.event_id)

    assert report.success == 3
    assert report.failed == 0
    assert await service.store.get("vehicles") == before["vehicles"]
    assert await service.store.get("seasonSettings") is None
    items = await service.load_audit_items(result.event_id)
    assert all(item.rolled_back for item in items)

    again = await service.rollback_event(result.event_id)
    assert again.success == 0


@pytest.mark.asyncio
async def test_purge_event_erases_imported_entities() -> None:
    service = SyncService(_seeded_store())
    bundle = service.load_bundle(json.dumps({"vehicles": [{"id": "v2", "plateNumber": "B200"}]}))
    result = await service.apply_import(await service.preview_import(bundle), bundle)

    report = await service.purge_event(result.event_id)

    assert report.success == 1
    assert await service.store.get("vehicles") == [{"id": "v1", "plateNumber": "A100", "brand": "Kamaz"}]
    assert all(item.purged for item in await service.load_audit_items(result.event_id))


@pytest.mark.asyncio
async def test_deleting_period_lock_is_audited_and_reversible() -> None:
    service = SyncService(_seeded_store(), SyncConfig(lock_signing_key="k"))
    messages: list[BusMessage] = []
    service.bus.subscribe(messages.append)
    lock = await service.close_period("2023-11", "admin")
    assert lock.record_count == 1

    header = await service.delete_period_lock(lock.id, user_id="admin")

    assert not await service.is_period_locked("2023-11-15")
    (item,) = await service.load_audit_items(header.id)
    assert item.action == AuditAction.DELETE
    assert item.before_snapshot["dataHash"] == lock.data_hash
    assert Topic.INTEGRITY in {m.topic for m in messages}

    await service.rollback_event(header.id)

    assert await service.is_period_locked("2023-11-15")
    assert (await service.verify_period(lock.id)).is_valid


@pytest.mark.asyncio
async def test_clear_selected_removes_ids_or_whole_keys() -> None:
    service = SyncService(_seeded_store())

    await service.clear_selected({"waybills": ["w1", "w3"], "appSettings": ["single"]})

    assert [w["id"] for w in await service.store.get("waybills")] == ["w2", "w4"]
    assert await service.store.get("appSettings") is None


@pytest.mark.asyncio
async def test_archive_year_moves_only_finalized_waybills() -> None:
    service = SyncService(_seeded_store())

    stats = await service.archive_stats()
    assert stats.waybills_by_year["2023"].total == 3
    assert stats.waybills_by_year["2023"].posted == 2
    assert stats.waybills_by_year["2024"].total == 1

    result = await service.archive_year("2023")

    assert result.count == 2
    document = json.loads(result.content)
    assert document["meta"]["year"] == "2023"
    assert [w["id"] for w in document["data"]] == ["w1", "w2"]
    assert [w["id"] for w in await service.store.get("waybills")] == ["w3", "w4"]
    assert (await service.archive_year("1999")).count == 0


@pytest.mark.asyncio
async def test_prune_audit_log_via_service() -> None:
    service = SyncService(_seeded_store())
    for n in range(3):
        bundle = service.load_bundle(json.dumps({"appSettings": {"theme": f"t{n}"}}))
        await service.apply_import(await service.preview_import(bundle), bundle)

    assert await service.prune_audit_log(1) == 2
    assert len(await service.list_audit_events()) == 1
