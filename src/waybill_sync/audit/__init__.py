"""Chunked audit trail with rollback and purge."""

from waybill_sync.audit.compression import (
    CodecError,
    Compressor,
    NullCompressor,
    SoftwareGzipCompressor,
    StreamingGzipCompressor,
    pick_compressor,
    probe_codecs,
)
from waybill_sync.audit.log import AuditLog, chunk_key, new_event_id
from waybill_sync.audit.recovery import group_by_storage_key, purge_audit_items, rollback_audit_items

__all__ = [
    "AuditLog",
    "CodecError",
    "Compressor",
    "NullCompressor",
    "SoftwareGzipCompressor",
    "StreamingGzipCompressor",
    "chunk_key",
    "group_by_storage_key",
    "new_event_id",
    "pick_compressor",
    "probe_codecs",
    "purge_audit_items",
    "rollback_audit_items",
]
