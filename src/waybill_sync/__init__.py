"""waybill_sync - Data interchange, audit trail and period locking for waybill stores."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("waybill-sync")
except PackageNotFoundError:
    __version__ = "0+local"
from waybill_sync.audit import AuditLog, purge_audit_items, rollback_audit_items
from waybill_sync.bus import DataBus, Topic
from waybill_sync.config import SyncConfig
from waybill_sync.exceptions import (
    AuditError,
    AuditEventNotFoundError,
    BundleParseError,
    CorruptAuditPayloadError,
    DecompressorUnavailableError,
    EmptyPeriodError,
    IntegrityError,
    InvalidPeriodError,
    MigrationGapError,
    PartialApplyFailure,
    PeriodAlreadyLockedError,
    PeriodLockNotFoundError,
    PolicyViolation,
    WaybillSyncConfigError,
    WaybillSyncError,
)
from waybill_sync.importing import (
    ADMIN_IMPORT_POLICY,
    USER_IMPORT_POLICY,
    ImportApplier,
    ImportPreviewer,
    infer_category_by_key_name,
    is_row_allowed_by_policy,
)
from waybill_sync.integrity import PeriodLockManager
from waybill_sync.interchange import apply_migrations, parse_bundle, to_bundle
from waybill_sync.models import (
    AuditEvent,
    AuditEventHeader,
    ExportBundle,
    ImportAuditItem,
    ImportPolicy,
    ImportRow,
    OperationReport,
    PeriodLock,
    UpdateMode,
    VerificationResult,
)
from waybill_sync.reconcile import reconcile
from waybill_sync.service import SyncService
from waybill_sync.storage import InMemoryKeyValueStore, KeyValueStore, RepositoryRegistry, StorageAccess

__all__ = [
    "__version__",
    "ADMIN_IMPORT_POLICY",
    "USER_IMPORT_POLICY",
    "AuditError",
    "AuditEvent",
    "AuditEventHeader",
    "AuditEventNotFoundError",
    "AuditLog",
    "BundleParseError",
    "CorruptAuditPayloadError",
    "DataBus",
    "DecompressorUnavailableError",
    "EmptyPeriodError",
    "ExportBundle",
    "ImportApplier",
    "ImportAuditItem",
    "ImportPolicy",
    "ImportPreviewer",
    "ImportRow",
    "InMemoryKeyValueStore",
    "IntegrityError",
    "InvalidPeriodError",
    "KeyValueStore",
    "MigrationGapError",
    "OperationReport",
    "PartialApplyFailure",
    "PeriodAlreadyLockedError",
    "PeriodLock",
    "PeriodLockManager",
    "PeriodLockNotFoundError",
    "PolicyViolation",
    "RepositoryRegistry",
    "StorageAccess",
    "SyncConfig",
    "SyncService",
    "Topic",
    "UpdateMode",
    "VerificationResult",
    "WaybillSyncConfigError",
    "WaybillSyncError",
    "apply_migrations",
    "infer_category_by_key_name",
    "is_row_allowed_by_policy",
    "parse_bundle",
    "purge_audit_items",
    "reconcile",
    "rollback_audit_items",
    "to_bundle",
]
