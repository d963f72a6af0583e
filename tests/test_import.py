from __future__ import annotations

import asyncio
from typing import Any

import pytest

from waybill_sync._constants import BACKUP_KEY, LAST_IMPORT_META_KEY
from waybill_sync.audit import AuditLog
from waybill_sync.bus import BusMessage, DataBus, Topic
from waybill_sync.config import SyncConfig
from waybill_sync.exceptions import PartialApplyFailure, PolicyViolation
from waybill_sync.importing import USER_IMPORT_POLICY, ImportApplier, ImportPreviewer
from waybill_sync.interchange import to_bundle
from waybill_sync.models import AuditAction, ExportBundle, ImportRow, UpdateMode
from waybill_sync.storage import InMemoryKeyValueStore, RepositoryRegistry, StorageAccess


class _ScriptedStore(InMemoryKeyValueStore):
    """In-memory store that can fail writes or stall reads for chosen keys."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        super().__init__(initial)
        self.fail_writes: set[str] = set()
        self.fail_reads: set[str] = set()
        self.read_delay = 0.0

    async def get(self, key: str) -> Any | None:
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        if key in self.fail_reads:
            raise OSError(f"cannot read {key}")
        return await super().get(key)

    async def set(self, key: str, value: Any) -> None:
        if key in self.fail_writes:
            raise OSError(f"cannot write {key}")
        await super().set(key, value)


def _pipeline(store: InMemoryKeyValueStore, **config: Any) -> tuple[ImportPreviewer, ImportApplier, AuditLog, list]:
    access = StorageAccess(RepositoryRegistry(store))
    audit = AuditLog(store)
    bus = DataBus()
    messages: list[BusMessage] = []
    bus.subscribe(messages.append)
    return ImportPreviewer(access, SyncConfig(**config)), ImportApplier(access, audit, bus), audit, messages


def _bundle() -> ExportBundle:
    return to_bundle(
        {
            "meta": {"appId": "waybill-app", "formatVersion": 2, "createdAt": "2024-06-01T10:00:00.000Z"},
            "data": {
                "vehicles": [{"id": "v1", "plateNumber": "A100BB"}, {"id": "v2", "plateNumber": "B200"}],
                "appSettings": {"theme": "dark"},
            },
        }
    )


def _row(rows: list[ImportRow], key: str) -> ImportRow:
    return next(row for row in rows if row.key == key)


@pytest.mark.asyncio
async def test_preview_builds_rows_with_stats_and_selection() -> None:
    store = InMemoryKeyValueStore({"vehicles": [{"id": "v1", "plateNumber": "A100"}]})
    previewer, _, _, _ = _pipeline(store)

    rows = await previewer.analyze(_bundle())

    vehicles = _row(rows, "vehicles")
    assert vehicles.known
    assert vehicles.action.enabled
    assert vehicles.action.update_mode == UpdateMode.MERGE
    assert vehicles.stats.new_count == 1
    assert vehicles.stats.update_count == 1
    assert vehicles.selected_ids() == {"v1", "v2"}
    assert _row(rows, "appSettings").selected_ids() == {"single"}


@pytest.mark.asyncio
async def test_preview_disables_rows_rejected_by_policy() -> None:
    bundle = to_bundle({"waybills": [{"id": "w1"}], "employees": [{"id": "e1"}], BACKUP_KEY: {}})
    previewer, _, _, _ = _pipeline(InMemoryKeyValueStore())

    rows = await previewer.analyze(bundle, USER_IMPORT_POLICY)

    assert _row(rows, "waybills").action.enabled
    assert not _row(rows, "employees").action.enabled
    assert not _row(rows, BACKUP_KEY).action.enabled
    # Selection is left alone for disabled rows.
    assert _row(rows, "employees").selected_ids() == {"e1"}


@pytest.mark.asyncio
async def test_preview_treats_heavy_keys_as_empty() -> None:
    store = InMemoryKeyValueStore({"businessAudit": [{"id": "a1"}, {"id": "a2"}]})
    previewer, _, _, _ = _pipeline(store)

    rows = await previewer.analyze(to_bundle({"businessAudit": [{"id": "a1"}]}))

    assert rows[0].stats.existing_count == 0
    assert rows[0].stats.new_count == 1


@pytest.mark.asyncio
async def test_preview_timeout_degrades_to_empty_current_values() -> None:
    store = _ScriptedStore({"vehicles": [{"id": "v1", "plateNumber": "A100"}]})
    store.read_delay = 1.0
    previewer, _, _, _ = _pipeline(store, analysis_timeout=0.05)

    rows = await previewer.analyze(_bundle())

    vehicles = _row(rows, "vehicles")
    assert vehicles.stats.existing_count == 0
    assert vehicles.stats.new_count == 2


@pytest.mark.asyncio
async def test_preview_read_error_degrades_to_missing_value() -> None:
    store = _ScriptedStore({"appSettings": {"theme": "light"}})
    store.fail_reads.add("appSettings")
    previewer, _, _, _ = _pipeline(store)

    rows = await previewer.analyze(_bundle())

    settings = _row(rows, "appSettings")
    assert settings.stats.existing_count == 0
    assert settings.sub_items[0].status == "new"


@pytest.mark.asyncio
async def test_apply_backs_up_reconciles_and_audits() -> None:
    store = InMemoryKeyValueStore({"vehicles": [{"id": "v1", "plateNumber": "A100", "brand": "Kamaz"}]})
    previewer, applier, audit, messages = _pipeline(store)
    bundle = _bundle()
    rows = await previewer.analyze(bundle)

    result = await applier.apply(rows, bundle)

    assert result.applied_keys == ["vehicles", "appSettings"]
    assert await store.get("vehicles") == [
        {"id": "v1", "plateNumber": "A100BB", "brand": "Kamaz"},
        {"id": "v2", "plateNumber": "B200"},
    ]
    assert await store.get("appSettings") == {"theme": "dark"}

    backup = await store.get(BACKUP_KEY)
    assert backup["keys"] == ["vehicles", "appSettings"]
    assert backup["data"] == {
        "vehicles": [{"id": "v1", "plateNumber": "A100", "brand": "Kamaz"}],
        "appSettings": None,
    }

    (header,) = await audit.read_index()
    assert header.id == result.event_id
    assert header.source_meta["createdAt"] == "2024-06-01T10:00:00.000Z"
    items = await audit.load_event_items(header)
    summary = {(item.key, item.id_value): item.action for item in items}
    assert summary == {
        ("vehicles", "v1"): AuditAction.MERGE,
        ("vehicles", "v2"): AuditAction.INSERT,
        ("appSettings", None): AuditAction.INSERT,
    }
    v1 = next(item for item in items if item.id_value == "v1")
    assert v1.before_snapshot == {"id": "v1", "plateNumber": "A100", "brand": "Kamaz"}
    assert v1.params == {"id": "v1", "plateNumber": "A100BB", "brand": "Kamaz"}

    assert (await store.get(LAST_IMPORT_META_KEY))["appliedKeys"] == ["vehicles", "appSettings"]
    assert [m.topic for m in messages] == [Topic.SETTINGS]


@pytest.mark.asyncio
async def test_apply_respects_sub_item_selection() -> None:
    store = InMemoryKeyValueStore(
        {
            "vehicles": [
                {"id": "v1", "plateNumber": "A100"},
                {"id": "v2", "plateNumber": "B200"},
                {"id": "v3", "plateNumber": "C300"},
            ],
            "appSettings": {"theme": "light"},
        }
    )
    previewer, applier, _, _ = _pipeline(store)
    bundle = _bundle()
    rows = await previewer.analyze(bundle)
    vehicles = _row(rows, "vehicles")
    vehicles.select({"v2"})
    vehicles.set_mode(UpdateMode.OVERWRITE, delete_missing=True)
    _row(rows, "appSettings").select_none()

    await applier.apply(rows, bundle)

    # v1 was not selected so it keeps its value; v3 is absent from the bundle and deleted.
    assert await store.get("vehicles") == [{"id": "v1", "plateNumber": "A100"}, {"id": "v2", "plateNumber": "B200"}]
    assert await store.get("appSettings") == {"theme": "light"}


@pytest.mark.asyncio
async def test_apply_rejects_policy_violation_before_writing() -> None:
    store = InMemoryKeyValueStore()
    previewer, applier, audit, _ = _pipeline(store)
    bundle = to_bundle({"waybills": [{"id": "w1"}], "employees": [{"id": "e1"}]})
    rows = await previewer.analyze(bundle, USER_IMPORT_POLICY)
    _row(rows, "employees").action.enabled = True

    with pytest.raises(PolicyViolation):
        await applier.apply(rows, bundle, USER_IMPORT_POLICY)

    assert await store.list_keys() == []
    assert await audit.read_index() == []


@pytest.mark.asyncio
async def test_apply_aborts_on_first_failure_and_keeps_applied_keys() -> None:
    store = _ScriptedStore({"appSettings": {"theme": "light"}, "waybills": [{"id": "w0"}]})
    previewer, applier, audit, _ = _pipeline(store)
    bundle = to_bundle(
        {
            "appSettings": {"theme": "dark"},
            "vehicles": [{"id": "v1"}],
            "waybills": [{"id": "w1"}],
        }
    )
    rows = await previewer.analyze(bundle)
    store.fail_writes.add("vehicles")

    with pytest.raises(PartialApplyFailure) as excinfo:
        await applier.apply(rows, bundle)

    failure = excinfo.value
    assert failure.applied_keys == ["appSettings"]
    assert failure.failed_key == "vehicles"
    assert failure.backup_key == BACKUP_KEY
    assert isinstance(failure.__cause__, OSError)
    assert await store.get("appSettings") == {"theme": "dark"}
    assert await store.get("waybills") == [{"id": "w0"}]

    (header,) = await audit.read_index()
    assert header.id == failure.audit_event_id
    assert [item.key for item in await audit.load_event_items(header)] == ["appSettings"]

    store.fail_writes.clear()
    restored = await applier.restore_from_backup()

    assert set(restored) == {"appSettings", "vehicles", "waybills"}
    assert await store.get("appSettings") == {"theme": "light"}
    assert await store.get("vehicles") is None
