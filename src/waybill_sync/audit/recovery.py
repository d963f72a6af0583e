"""Undo or permanently erase changes recorded in audit items."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from waybill_sync.models.audit import ImportAuditItem, OperationReport
from waybill_sync.reconcile.tree import DEFAULT_ID_FIELD
from waybill_sync.storage.protocols import KeyValueStore

_logger = logging.getLogger(__name__)


def group_by_storage_key(items: Iterable[ImportAuditItem]) -> dict[str, list[ImportAuditItem]]:
    """Group *items* by ``storage_key``, keeping first-seen key order and item order."""
    groups: dict[str, list[ImportAuditItem]] = {}
    for item in items:
        groups.setdefault(item.storage_key, []).append(item)
    return groups


def _is_entity_group(current: Any, items: list[ImportAuditItem]) -> bool:
    return any(item.id_value is not None for item in items) and (current is None or isinstance(current, list))


def _entity_key(entity: Any, id_field: str) -> str | None:
    if isinstance(entity, dict) and entity.get(id_field) is not None:
        return str(entity[id_field])
    return None


def _id_field(items: list[ImportAuditItem]) -> str:
    for item in items:
        if item.id_field:
            return item.id_field
    return DEFAULT_ID_FIELD


def _record_failure(report: OperationReport, key: str, count: int = 1) -> None:
    report.failed += count
    if key not in report.failed_keys:
        report.failed_keys.append(key)


async def purge_audit_items(store: KeyValueStore, items: Iterable[ImportAuditItem]) -> OperationReport:
    """Erase the data referenced by *items*.

    Entity keys lose every entity whose id matches an item's ``id_value``;
    singleton keys are deleted outright.  Errors are counted per key and
    never abort the remaining keys.
    """
    report = OperationReport()
    for storage_key, group in group_by_storage_key(items).items():
        try:
            current = await store.get(storage_key)
            if _is_entity_group(current, group):
                id_field = _id_field(group)
                doomed = {str(item.id_value) for item in group if item.id_value is not None}
                missing_ids = sum(1 for item in group if item.id_value is None)
                if current:
                    kept = [entity for entity in current if _entity_key(entity, id_field) not in doomed]
                    await store.set(storage_key, kept)
                for item in group:
                    if item.id_value is not None:
                        item.purged = True
                report.success += len(group) - missing_ids
                if missing_ids:
                    _record_failure(report, storage_key, missing_ids)
            else:
                await store.delete(storage_key)
                for item in group:
                    item.purged = True
                report.success += len(group)
        except Exception:  # noqa: BLE001
            _logger.warning("Purge failed for %s", storage_key, exc_info=True)
            _record_failure(report, storage_key, len(group))

    _logger.info("Purge finished: %d succeeded, %d failed", report.success, report.failed)
    return report


async def _rollback_entities(
    store: KeyValueStore,
    storage_key: str,
    current: list[Any] | None,
    group: list[ImportAuditItem],
    report: OperationReport,
) -> None:
    id_field = _id_field(group)
    entities: dict[str, Any] = {}
    anonymous: list[Any] = []
    for entity in current or []:
        key = _entity_key(entity, id_field)
        if key is None:
            anonymous.append(entity)
        else:
            entities[key] = entity

    handled: set[str] = set()
    restored = 0
    for item in group:
        if item.id_value is None:
            continue
        key = str(item.id_value)
        if key not in handled:
            # The first item per entity wins; callers pass items oldest first.
            handled.add(key)
            if item.before_exists and item.before_snapshot is not None:
                entities[key] = item.before_snapshot
            else:
                if item.before_exists:
                    _logger.warning("No snapshot for %s[%s]; deleting instead of restoring", storage_key, key)
                entities.pop(key, None)
        restored += 1

    await store.set(storage_key, [*anonymous, *entities.values()])
    for item in group:
        if item.id_value is not None:
            item.rolled_back = True
    report.success += restored
    if restored < len(group):
        _record_failure(report, storage_key, len(group) - restored)


async def _rollback_singleton(
    store: KeyValueStore,
    storage_key: str,
    group: list[ImportAuditItem],
    report: OperationReport,
) -> None:
    source = next((item for item in group if item.before_snapshot is not None), None)
    if source is not None:
        await store.set(storage_key, source.before_snapshot)
    else:
        if group[0].before_exists:
            _logger.warning("No snapshot captured for %s; deleting it instead of restoring", storage_key)
        await store.delete(storage_key)
    for item in group:
        item.rolled_back = True
    report.success += len(group)


async def rollback_audit_items(store: KeyValueStore, items: Iterable[ImportAuditItem]) -> OperationReport:
    """Restore the state captured in the ``before_snapshot`` of *items*.

    For entity keys each referenced entity is put back to its snapshot, or
    removed when it did not exist before.  Singleton keys are restored from
    the first item carrying a snapshot.  Errors are counted per key and
    never abort the remaining keys.
    """
    report = OperationReport()
    for storage_key, group in group_by_storage_key(items).items():
        try:
            current = await store.get(storage_key)
            if _is_entity_group(current, group):
                await _rollback_entities(store, storage_key, current, group, report)
            else:
                await _rollback_singleton(store, storage_key, group, report)
        except Exception:  # noqa: BLE001
            _logger.warning("Rollback failed for %s", storage_key, exc_info=True)
            _record_failure(report, storage_key, len(group))

    _logger.info("Rollback finished: %d succeeded, %d failed", report.success, report.failed)
    return report
