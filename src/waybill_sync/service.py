"""High-level facade wiring storage, interchange, audit and integrity."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date

from waybill_sync import archive as _archive
from waybill_sync._constants import PERIOD_LOCKS, SINGLETON_KEYS
from waybill_sync.audit.log import AuditLog, AuditRef, new_event_id
from waybill_sync.audit.recovery import group_by_storage_key, purge_audit_items, rollback_audit_items
from waybill_sync.bus import DataBus, Topic, topic_for_key
from waybill_sync.config import SyncConfig
from waybill_sync.importing.apply import ImportApplier
from waybill_sync.importing.policy import ADMIN_IMPORT_POLICY
from waybill_sync.importing.preview import ImportPreviewer
from waybill_sync.integrity.locks import DEFAULT_LOCK_SCOPES, LockScope, PeriodLockManager
from waybill_sync.interchange.bundle import build_export_bundle, dump_bundle, export_file_name, parse_bundle
from waybill_sync.interchange.migrations import apply_migrations
from waybill_sync.models.archive import ArchiveResult, ArchiveStats
from waybill_sync.models.audit import (
    AuditAction,
    AuditEvent,
    AuditEventHeader,
    AuditExport,
    ImportAuditItem,
    OperationReport,
)
from waybill_sync.models.bundle import ExportBundle
from waybill_sync.models.importing import SINGLE_ITEM_ID, ImportPolicy, ImportResult, ImportRow, KeyCategory
from waybill_sync.models.integrity import PeriodLock, VerificationResult
from waybill_sync.storage.access import StorageAccess
from waybill_sync.storage.memory import InMemoryKeyValueStore
from waybill_sync.storage.protocols import KeyValueStore
from waybill_sync.storage.repository import RepositoryRegistry

_logger = logging.getLogger(__name__)


class SyncService:
    """Entry point for backup, import, audit recovery and period locking.

    Usage::

        service = SyncService(store, SyncConfig.from_env())
        bundle = service.load_bundle(raw_bytes)
        rows = await service.preview_import(bundle)
        result = await service.apply_import(rows, bundle)
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        config: SyncConfig | None = None,
        *,
        bus: DataBus | None = None,
        audit_log: AuditLog | None = None,
        lock_scopes: Iterable[LockScope] = DEFAULT_LOCK_SCOPES,
    ) -> None:
        self._config = config or SyncConfig()
        self._store = store if store is not None else InMemoryKeyValueStore()
        self._registry = RepositoryRegistry(self._store)
        self._access = StorageAccess(self._registry)
        self._bus = bus or DataBus()
        self._audit = audit_log or AuditLog.from_config(self._store, self._config)
        signing_key = self._config.lock_signing_key.encode("utf-8") if self._config.lock_signing_key else None
        self._locks = PeriodLockManager(self._registry, scopes=tuple(lock_scopes), signing_key=signing_key)
        self._previewer = ImportPreviewer(self._access, self._config)
        self._applier = ImportApplier(self._access, self._audit, self._bus)

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def registry(self) -> RepositoryRegistry:
        return self._registry

    @property
    def access(self) -> StorageAccess:
        return self._access

    @property
    def bus(self) -> DataBus:
        return self._bus

    @property
    def audit_log(self) -> AuditLog:
        return self._audit

    @property
    def locks(self) -> PeriodLockManager:
        return self._locks

    def _notify(self, storage_keys: Iterable[str]) -> None:
        for topic in {topic_for_key(key) for key in storage_keys}:
            self._bus.broadcast(topic)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    async def export_bundle(self, keys: Iterable[str] | None = None) -> ExportBundle:
        """Current-format bundle of *keys* (default: every stored key)."""
        selected = list(keys) if keys is not None else await self._store.list_keys()
        return await build_export_bundle(self._access, selected, self._config)

    async def export_document(self, keys: Iterable[str] | None = None, *, day: date | None = None) -> tuple[str, str]:
        """``(file_name, json_text)`` of an export ready to be saved."""
        bundle = await self.export_bundle(keys)
        return export_file_name(day), dump_bundle(bundle)

    def load_bundle(self, raw: bytes | str) -> ExportBundle:
        """Parse an import file and migrate it to the current format."""
        return apply_migrations(parse_bundle(raw))

    async def preview_import(self, bundle: ExportBundle, policy: ImportPolicy = ADMIN_IMPORT_POLICY) -> list[ImportRow]:
        return await self._previewer.analyze(bundle, policy)

    async def apply_import(
        self,
        rows: Iterable[ImportRow],
        bundle: ExportBundle,
        policy: ImportPolicy = ADMIN_IMPORT_POLICY,
    ) -> ImportResult:
        return await self._applier.apply(list(rows), bundle, policy)

    async def restore_backup(self) -> list[str]:
        """Roll the store back to the snapshot taken before the last import."""
        return await self._applier.restore_from_backup()

    async def clear_selected(self, selections: Mapping[str, Iterable[str]]) -> None:
        """Selectively delete data: listed entity ids, or whole keys when ``"single"`` is listed."""
        for key, ids in selections.items():
            id_list = list(ids)
            if SINGLE_ITEM_ID in id_list or key in SINGLETON_KEYS:
                await self._access.delete_data_for_key(key)
            elif id_list:
                await self._access.delete_data_for_key(key, id_list)
        self._notify(selections)

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    async def list_audit_events(self) -> list[AuditEventHeader]:
        return await self._audit.read_index()

    async def load_audit_items(self, ref: AuditRef) -> list[ImportAuditItem]:
        return await self._audit.load_event_items(await self._audit.resolve(ref))

    async def export_audit_event(self, ref: AuditRef) -> AuditExport:
        return await self._audit.export_event(ref)

    async def delete_audit_event(self, ref: AuditRef) -> None:
        await self._audit.delete_event(ref)
        self._bus.broadcast(Topic.AUDIT)

    async def rollback_event(self, ref: AuditRef) -> OperationReport:
        """Undo the changes of one audit event that were not yet undone or erased."""
        header = await self._audit.resolve(ref)
        items = await self._audit.load_event_items(header)
        pending = [item for item in items if not item.rolled_back and not item.purged]
        report = await rollback_audit_items(self._store, pending)
        await self._audit.update_event_items(header, items)
        self._notify(group_by_storage_key(pending))
        self._bus.broadcast(Topic.AUDIT)
        return report

    async def purge_event(self, ref: AuditRef) -> OperationReport:
        """Permanently erase the data touched by one audit event."""
        header = await self._audit.resolve(ref)
        items = await self._audit.load_event_items(header)
        pending = [item for item in items if not item.purged]
        report = await purge_audit_items(self._store, pending)
        await self._audit.update_event_items(header, items)
        self._notify(group_by_storage_key(pending))
        self._bus.broadcast(Topic.AUDIT)
        return report

    async def prune_audit_log(self, keep_last: int) -> int:
        removed = await _archive.prune_audit_log(self._audit, keep_last)
        if removed:
            self._bus.broadcast(Topic.AUDIT)
        return removed

    # ------------------------------------------------------------------
    # Period locks
    # ------------------------------------------------------------------

    async def close_period(self, period: str, user_id: str, notes: str | None = None) -> PeriodLock:
        lock = await self._locks.close_period(period, user_id, notes)
        self._bus.broadcast(Topic.INTEGRITY)
        return lock

    async def verify_period(self, lock_id: str) -> VerificationResult:
        return await self._locks.verify_period(lock_id)

    async def list_period_locks(self) -> list[PeriodLock]:
        return await self._locks.list_locks()

    async def is_period_locked(self, date_str: str | None) -> bool:
        return await self._locks.is_period_locked(date_str)

    async def delete_period_lock(self, lock_id: str, *, user_id: str | None = None) -> AuditEventHeader:
        """Reopen a period and record the deletion as a reversible audit event."""
        lock = await self._locks.delete_period_lock(lock_id)
        item = ImportAuditItem(
            storage_key=PERIOD_LOCKS,
            key=PERIOD_LOCKS,
            category=KeyCategory.OTHER,
            id_field="id",
            id_value=lock.id,
            action=AuditAction.DELETE,
            label=f"Period lock {lock.period}",
            params={"period": lock.period, "recordCount": lock.record_count},
            before_exists=True,
            after_exists=False,
            before_snapshot=lock.to_wire(),
        )
        source_meta = {"kind": "periodLockDelete", "period": lock.period, "userId": user_id}
        header = await self._audit.append_event_chunked(AuditEvent(id=new_event_id(), source_meta=source_meta, items=[item]))
        self._bus.broadcast(Topic.INTEGRITY)
        self._bus.broadcast(Topic.AUDIT)
        return header

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    async def archive_stats(self) -> ArchiveStats:
        return await _archive.archive_stats(self._registry, self._audit)

    async def archive_year(self, year: str) -> ArchiveResult:
        result = await _archive.archive_year(self._registry, year)
        if result.count:
            self._bus.broadcast(Topic.WAYBILLS)
        return result
