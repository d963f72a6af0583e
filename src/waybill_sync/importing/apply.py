"""Import apply: backup, reconcile, persist and audit the selected rows."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from waybill_sync._constants import BACKUP_KEY, LAST_IMPORT_META_KEY
from waybill_sync._redact import redact_for_log
from waybill_sync.audit.log import AuditLog, new_event_id
from waybill_sync.bus import DataBus, Topic
from waybill_sync.exceptions import PartialApplyFailure
from waybill_sync.importing.policy import ADMIN_IMPORT_POLICY, enforce_policy
from waybill_sync.models._base import utc_now_iso
from waybill_sync.models.audit import AuditAction, AuditEvent, ImportAuditItem
from waybill_sync.models.bundle import ExportBundle
from waybill_sync.models.importing import SINGLE_ITEM_ID, ImportPolicy, ImportResult, ImportRow, UpdateMode
from waybill_sync.reconcile.labels import build_params, item_label
from waybill_sync.reconcile.merge import EntityChange, merge_entities, reconcile_value
from waybill_sync.reconcile.tree import EntityShape, classify, entity_id
from waybill_sync.storage.access import StorageAccess

_logger = logging.getLogger(__name__)

_MODE_ACTIONS = {
    UpdateMode.OVERWRITE: AuditAction.OVERWRITE,
    UpdateMode.MERGE: AuditAction.MERGE,
    UpdateMode.SKIP: AuditAction.WRITE,
}


def _selected_entities(row: ImportRow, incoming: list[Any], id_field: str) -> list[Any]:
    if not row.sub_items:
        return incoming
    selected = row.selected_ids()
    return [item for item in incoming if str(entity_id(item, id_field)) in selected]


def _singleton_selected(row: ImportRow) -> bool:
    return not row.sub_items or SINGLE_ITEM_ID in row.selected_ids()


class ImportApplier:
    """Writes an edited import preview into the store.

    Keys are processed one at a time in row order.  The first failure
    aborts the remaining rows; keys already written stay written and the
    backup taken before the first write is the recovery point.
    """

    def __init__(self, access: StorageAccess, audit_log: AuditLog, bus: DataBus | None = None) -> None:
        self._access = access
        self._audit = audit_log
        self._bus = bus

    async def backup_current(self, keys: Sequence[str]) -> None:
        """Snapshot the current value of *keys* under the backup key."""
        data = {key: await self._access.get_data_for_key(key, missing_as_empty=False) for key in keys}
        await self._access.store.set(BACKUP_KEY, {"createdAt": utc_now_iso(), "keys": list(keys), "data": data})
        _logger.debug("Backed up %d key(s) before import", len(keys))

    async def restore_from_backup(self) -> list[str]:
        """Write every key of the pre-import backup back; returns the restored keys."""
        backup = await self._access.store.get(BACKUP_KEY)
        if not isinstance(backup, dict) or not isinstance(backup.get("data"), dict) or backup.get("keys") is None:
            _logger.warning("No usable import backup found under %s", BACKUP_KEY)
            return []
        restored: list[str] = []
        for key, value in backup["data"].items():
            # None marks a key that did not exist before the import.
            if value is None:
                await self._access.delete_data_for_key(key)
            else:
                await self._access.set_data_for_key(key, value)
            restored.append(key)
        _logger.info("Restored %d key(s) from the import backup of %s", len(restored), backup.get("createdAt"))
        if self._bus is not None:
            self._bus.broadcast(Topic.SETTINGS)
        return restored

    def _entity_items(self, row: ImportRow, id_field: str, changes: list[EntityChange]) -> list[ImportAuditItem]:
        items: list[ImportAuditItem] = []
        for change in changes:
            subject = change.after if change.after is not None else change.before
            items.append(
                ImportAuditItem(
                    storage_key=row.key,
                    key=row.key,
                    category=row.category,
                    id_field=id_field,
                    id_value=change.id_value,
                    action=change.action,
                    label=item_label(subject, row.key),
                    params=build_params(row.key, subject),
                    before_exists=change.before is not None,
                    after_exists=change.after is not None,
                    before_snapshot=change.before,
                    after_snapshot=change.after,
                )
            )
        return items

    async def apply_row(self, row: ImportRow) -> list[ImportAuditItem]:
        """Reconcile and persist one enabled row; returns its audit items."""
        key = row.key
        action = row.action
        current = await self._access.get_data_for_key(key, missing_as_empty=False)
        shape = classify(current, row.incoming)

        if isinstance(shape, EntityShape):
            incoming = row.incoming if isinstance(row.incoming, list) else []
            changes: list[EntityChange] = []
            value = merge_entities(
                current,
                _selected_entities(row, incoming, shape.id_field),
                action.update_mode,
                action.insert_new,
                False,
                id_field=shape.id_field,
                changes=changes,
            )
            if action.delete_missing:
                # Missing means absent from the whole incoming set, not just the selection.
                value = merge_entities(
                    value,
                    incoming,
                    UpdateMode.SKIP,
                    False,
                    True,
                    id_field=shape.id_field,
                    changes=changes,
                )
            await self._access.set_data_for_key(key, value)
            _logger.debug("Imported %s: %d entity change(s)", key, len(changes))
            return self._entity_items(row, shape.id_field, changes)

        if not _singleton_selected(row):
            _logger.debug("Skipping %s: value not selected", key)
            return []
        outcome = reconcile_value(current, row.incoming, action.update_mode, shape=shape)
        await self._access.set_data_for_key(key, outcome.value)
        _logger.debug("Imported %s = %s", key, redact_for_log(outcome.value))
        return [
            ImportAuditItem(
                storage_key=key,
                key=key,
                category=row.category,
                action=AuditAction.INSERT if current is None else _MODE_ACTIONS[action.update_mode],
                label=f"Imported {key}",
                params=build_params(key, outcome.value),
                before_exists=current is not None,
                after_exists=outcome.value is not None,
                before_snapshot=current,
                after_snapshot=outcome.value,
            )
        ]

    async def apply(
        self,
        rows: Sequence[ImportRow],
        bundle: ExportBundle,
        policy: ImportPolicy = ADMIN_IMPORT_POLICY,
    ) -> ImportResult:
        """Apply every enabled row and record a single audit event.

        Raises
        ------
        PolicyViolation
            Before anything is written, when an enabled row breaks *policy*.
        PartialApplyFailure
            When a key fails mid-way; earlier keys remain applied and are
            audited.
        """
        enabled = [row for row in rows if row.action.enabled]
        for row in enabled:
            enforce_policy(row, policy)

        await self.backup_current([row.key for row in enabled])

        event_id = new_event_id()
        audit_items: list[ImportAuditItem] = []
        applied: list[str] = []
        for row in enabled:
            try:
                audit_items.extend(await self.apply_row(row))
            except Exception as exc:
                _logger.error("Import aborted at %s after %d key(s)", row.key, len(applied), exc_info=True)
                recorded = await self._record(event_id, bundle, audit_items) if audit_items else None
                raise PartialApplyFailure(
                    f"Import failed at key {row.key!r}; {len(applied)} key(s) already applied, backup in {BACKUP_KEY}",
                    applied_keys=applied,
                    failed_key=row.key,
                    backup_key=BACKUP_KEY,
                    audit_event_id=recorded,
                ) from exc
            applied.append(row.key)

        await self._record(event_id, bundle, audit_items)
        await self._access.store.set(
            LAST_IMPORT_META_KEY,
            {**bundle.meta.to_wire(), "importedAt": utc_now_iso(), "appliedKeys": applied},
        )
        if self._bus is not None:
            self._bus.broadcast(Topic.SETTINGS)
        _logger.info("Import applied: %d key(s), %d audit item(s)", len(applied), len(audit_items))
        return ImportResult(event_id=event_id, applied_keys=applied, audit_item_count=len(audit_items), backup_key=BACKUP_KEY)

    async def _record(self, event_id: str, bundle: ExportBundle, items: list[ImportAuditItem]) -> str:
        event = AuditEvent(id=event_id, source_meta=bundle.meta.to_wire(), items=items)
        header = await self._audit.append_event_chunked(event)
        return header.id
