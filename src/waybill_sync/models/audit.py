"""Audit trail models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field

from waybill_sync.models._base import SyncModel, utc_now_iso
from waybill_sync.models.importing import KeyCategory


class AuditAction(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    OVERWRITE = "overwrite"
    MERGE = "merge"
    DELETE = "delete"
    SKIP = "skip"
    WRITE = "write"
    UNKNOWN = "unknown"


class Compression(StrEnum):
    GZIP = "gzip"
    NONE = "none"


class ChunkInfo(SyncModel):
    """Where and how an event's item payload is stored."""

    keys: list[str] = Field(default_factory=list)
    compression: Compression = Compression.NONE
    total_chars: int = 0


class AuditEventHeader(SyncModel):
    """Index entry for one audit event; the items live in chunk records."""

    id: str
    at: str = Field(default_factory=utc_now_iso)
    source_meta: Any = None
    item_count: int = 0
    chunk: ChunkInfo = Field(default_factory=ChunkInfo)


class ImportAuditItem(SyncModel):
    """One recorded change, with enough state to undo or erase it.

    ``before_snapshot``/``after_snapshot`` are ``None`` when not captured.
    For entity collections ``id_field``/``id_value`` locate the entity
    inside the array stored under ``storage_key``.
    """

    storage_key: str
    key: str
    category: KeyCategory | None = None
    id_field: str | None = None
    id_value: str | int | None = None
    action: AuditAction = AuditAction.UNKNOWN
    label: str | None = None
    params: dict[str, Any] | None = None
    before_exists: bool = False
    after_exists: bool = False
    before_snapshot: Any = None
    after_snapshot: Any = None
    purged: bool | None = None
    rolled_back: bool | None = None


class AuditEvent(SyncModel):
    """An audit event before it is split into header + chunks."""

    id: str
    at: str = Field(default_factory=utc_now_iso)
    source_meta: Any = None
    items: list[ImportAuditItem] = Field(default_factory=list)


class OperationReport(SyncModel):
    """Per-item success/failure counts of a purge or rollback."""

    success: int = 0
    failed: int = 0
    failed_keys: list[str] = Field(default_factory=list)


class AuditExport(SyncModel):
    """A downloadable JSON document for one audit event."""

    file_name: str
    content: str
