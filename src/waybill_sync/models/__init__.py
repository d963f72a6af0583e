"""Data models for bundles, import previews, the audit trail and period locks."""

from waybill_sync.models._base import SyncModel, utc_now_iso
from waybill_sync.models.archive import ArchiveResult, ArchiveStats, YearStats
from waybill_sync.models.audit import (
    AuditAction,
    AuditEvent,
    AuditEventHeader,
    AuditExport,
    ChunkInfo,
    Compression,
    ImportAuditItem,
    OperationReport,
)
from waybill_sync.models.bundle import BundleMeta, ExportBundle
from waybill_sync.models.importing import (
    SINGLE_ITEM_ID,
    ImportAction,
    ImportPolicy,
    ImportResult,
    ImportRow,
    ImportStats,
    ImportSubItem,
    KeyCategory,
    SubItemStatus,
    UpdateMode,
)
from waybill_sync.models.integrity import PeriodLock, VerificationResult, validate_period

__all__ = [
    "SINGLE_ITEM_ID",
    "ArchiveResult",
    "ArchiveStats",
    "AuditAction",
    "AuditEvent",
    "AuditEventHeader",
    "AuditExport",
    "BundleMeta",
    "ChunkInfo",
    "Compression",
    "ExportBundle",
    "ImportAction",
    "ImportAuditItem",
    "ImportPolicy",
    "ImportResult",
    "ImportRow",
    "ImportStats",
    "ImportSubItem",
    "KeyCategory",
    "OperationReport",
    "PeriodLock",
    "SubItemStatus",
    "SyncModel",
    "UpdateMode",
    "VerificationResult",
    "YearStats",
    "utc_now_iso",
    "validate_period",
]
