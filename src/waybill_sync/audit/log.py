"""Chunked, compressed, append-only audit trail.

Layout in the key-value store:

* ``__import_audit_log__`` holds the index: a list of event headers,
  newest first, capped at ``max_events``.
* ``__import_audit_chunk__:<eventId>:<n>`` holds slice ``n`` of the
  event's serialized (and usually gzip+base64 encoded) item list.

Chunk records are owned by their header and are deleted whenever the
header is evicted or deleted.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from waybill_sync._constants import AUDIT_CHUNK_PREFIX, AUDIT_CHUNK_SIZE, AUDIT_INDEX_KEY, AUDIT_MAX_EVENTS, DEFAULT_APP_ID
from waybill_sync.audit.compression import CodecError, Compressor, pick_compressor, probe_codecs
from waybill_sync.config import SyncConfig
from waybill_sync.exceptions import AuditEventNotFoundError, CorruptAuditPayloadError, DecompressorUnavailableError
from waybill_sync.models._base import utc_now_iso
from waybill_sync.models.audit import AuditEvent, AuditEventHeader, AuditExport, ChunkInfo, Compression, ImportAuditItem
from waybill_sync.storage.protocols import KeyValueStore

_logger = logging.getLogger(__name__)

AuditRef = str | AuditEventHeader


def new_event_id() -> str:
    """Time-ordered event id, ``<epoch ms>_<random hex>``."""
    return f"{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def chunk_key(event_id: str, index: int) -> str:
    return f"{AUDIT_CHUNK_PREFIX}{event_id}:{index}"


def split_chunks(text: str, size: int) -> list[str]:
    return [text[start : start + size] for start in range(0, len(text), size)]


def _file_timestamp(at: str | None) -> str:
    moment: datetime | None = None
    if at:
        try:
            moment = datetime.fromisoformat(at)
        except ValueError:
            moment = None
    return (moment or datetime.now(UTC)).strftime("%Y%m%d-%H%M%S")


class AuditLog:
    """Reads and writes audit events in the key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_events: int = AUDIT_MAX_EVENTS,
        chunk_size: int = AUDIT_CHUNK_SIZE,
        codecs: Mapping[Compression, Compressor] | None = None,
        compression_enabled: bool = True,
        app_id: str = DEFAULT_APP_ID,
    ) -> None:
        self._store = store
        self._max_events = max_events
        self._chunk_size = chunk_size
        self._codecs = dict(codecs) if codecs is not None else probe_codecs()
        self._writer = pick_compressor(self._codecs, enabled=compression_enabled)
        self._app_id = app_id

    @classmethod
    def from_config(cls, store: KeyValueStore, config: SyncConfig, **kwargs: Any) -> AuditLog:
        return cls(
            store,
            max_events=config.audit_max_events,
            chunk_size=config.audit_chunk_size,
            compression_enabled=config.compression_enabled,
            app_id=config.app_id,
            **kwargs,
        )

    @property
    def compression(self) -> Compression:
        """Compression used for newly written events."""
        return self._writer.compression

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    async def read_index(self) -> list[AuditEventHeader]:
        """Event headers, newest first.

        Tolerates an index stored as a raw JSON string by older versions.
        Entries that do not validate are skipped.
        """
        raw = await self._store.get(AUDIT_INDEX_KEY)
        if isinstance(raw, str) and raw.strip():
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                _logger.warning("Audit index is an unreadable string; treating it as empty")
                return []
        if not isinstance(raw, list):
            return []

        headers: list[AuditEventHeader] = []
        for entry in raw:
            try:
                headers.append(AuditEventHeader.model_validate(entry))
            except ValidationError:
                _logger.warning("Skipping malformed audit index entry: %r", entry)
        return headers

    async def write_index(self, index: Iterable[AuditEventHeader]) -> None:
        await self._store.set(AUDIT_INDEX_KEY, [header.to_wire() for header in index])

    async def resolve(self, ref: AuditRef) -> AuditEventHeader:
        """Header for an event id (or the header itself)."""
        if isinstance(ref, AuditEventHeader):
            return ref
        for header in await self.read_index():
            if header.id == ref:
                return header
        raise AuditEventNotFoundError(f"Audit event not found: {ref}", event_id=ref)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def _delete_chunks(self, keys: Iterable[str]) -> None:
        for key in keys:
            try:
                await self._store.delete(key)
            except Exception:  # noqa: BLE001
                _logger.warning("Failed to delete audit chunk %s", key, exc_info=True)

    async def save_event_items(self, header: AuditEventHeader, items: list[ImportAuditItem]) -> AuditEventHeader:
        """Serialize, compress and chunk *items*, updating ``header.chunk`` in place.

        Chunks previously recorded on *header* are deleted first.
        """
        if header.chunk.keys:
            await self._delete_chunks(header.chunk.keys)

        text = json.dumps([item.to_wire() for item in items], ensure_ascii=False, separators=(",", ":"))
        compression = self._writer.compression
        try:
            payload = await asyncio.to_thread(self._writer.compress, text)
        except CodecError:
            _logger.warning("Compression failed for audit event %s; storing uncompressed", header.id, exc_info=True)
            payload = text
            compression = Compression.NONE

        parts = split_chunks(payload, self._chunk_size)
        keys = [chunk_key(header.id, pos) for pos in range(len(parts))]
        await asyncio.gather(*(self._store.set(key, part) for key, part in zip(keys, parts, strict=True)))

        header.item_count = len(items)
        header.chunk = ChunkInfo(keys=keys, compression=compression, total_chars=len(payload))
        _logger.debug(
            "Stored %d audit items for %s in %d chunk(s) (%s, %d chars)",
            len(items),
            header.id,
            len(keys),
            compression,
            len(payload),
        )
        return header

    async def load_event_items(self, header: AuditEventHeader) -> list[ImportAuditItem]:
        """Fetch, join, decompress and parse the items of one event.

        Raises
        ------
        DecompressorUnavailableError
            When the recorded compression has no decoder here.
        CorruptAuditPayloadError
            When a chunk record is missing, or the payload cannot be decoded
            or is not a valid item list.
        """
        if not header.chunk.keys:
            if header.item_count:
                raise CorruptAuditPayloadError(
                    f"Audit event {header.id} records {header.item_count} item(s) but no chunks",
                    event_id=header.id,
                )
            return []
        parts = await asyncio.gather(*(self._store.get(key) for key in header.chunk.keys))
        missing = [key for key, part in zip(header.chunk.keys, parts, strict=True) if not isinstance(part, str)]
        if missing:
            raise CorruptAuditPayloadError(
                f"Audit event {header.id} is missing {len(missing)} chunk record(s): {missing}",
                event_id=header.id,
            )
        joined = "".join(parts)

        codec = self._codecs.get(header.chunk.compression)
        if codec is None:
            raise DecompressorUnavailableError(
                f"No decoder available for {header.chunk.compression} audit payloads",
                compression=str(header.chunk.compression),
            )
        try:
            text = await asyncio.to_thread(codec.decompress, joined)
        except CodecError as exc:
            raise CorruptAuditPayloadError(
                f"Audit payload of event {header.id} could not be decompressed: {exc}",
                event_id=header.id,
            ) from exc

        if not text.strip():
            if header.item_count:
                raise CorruptAuditPayloadError(
                    f"Audit payload of event {header.id} is empty but {header.item_count} item(s) were recorded",
                    event_id=header.id,
                )
            return []
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CorruptAuditPayloadError(
                f"Audit payload of event {header.id} is not valid JSON; the data may be corrupted",
                event_id=header.id,
            ) from exc
        if not isinstance(decoded, list):
            raise CorruptAuditPayloadError(
                f"Audit payload of event {header.id} is not an item list",
                event_id=header.id,
            )
        try:
            return [ImportAuditItem.model_validate(entry) for entry in decoded]
        except ValidationError as exc:
            raise CorruptAuditPayloadError(
                f"Audit payload of event {header.id} contains invalid items",
                event_id=header.id,
            ) from exc

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def append_event_chunked(self, event: AuditEvent) -> AuditEventHeader:
        """Store *event* and put its header at the front of the index.

        An existing event with the same id is replaced.  Headers beyond
        ``max_events`` are evicted together with their chunks.
        """
        index = await self.read_index()
        for previous in [old for old in index if old.id == event.id]:
            index.remove(previous)
            await self._delete_chunks(previous.chunk.keys)
            _logger.debug("Replacing audit event %s", event.id)

        header = AuditEventHeader(id=event.id, at=event.at, source_meta=event.source_meta)
        await self.save_event_items(header, event.items)
        index.insert(0, header)
        excess = index[self._max_events :]
        del index[self._max_events :]
        for old in excess:
            await self._delete_chunks(old.chunk.keys)
        await self.write_index(index)

        if excess:
            _logger.debug("Evicted %d audit event(s): %s", len(excess), [old.id for old in excess])
        _logger.info("Recorded audit event %s with %d item(s)", header.id, header.item_count)
        return header

    async def update_event_items(self, header: AuditEventHeader, items: list[ImportAuditItem]) -> AuditEventHeader:
        """Rewrite the items of an existing event (e.g. after marking them rolled back)."""
        await self.save_event_items(header, items)
        index = await self.read_index()
        for pos, existing in enumerate(index):
            if existing.id == header.id:
                index[pos] = header
                await self.write_index(index)
                break
        return header

    async def export_event(self, ref: AuditRef) -> AuditExport:
        """Downloadable JSON document ``{meta, header, items}`` for one event."""
        header = await self.resolve(ref)
        items = await self.load_event_items(header)
        payload = {
            "meta": {
                "app": self._app_id,
                "kind": "audit-event",
                "formatVersion": 1,
                "createdAt": utc_now_iso(),
                "sourceEventId": header.id,
                "sourceEventCreatedAt": header.at or None,
            },
            "header": header.to_wire(),
            "items": [item.to_wire() for item in items],
        }
        return AuditExport(
            file_name=f"audit-event-{header.id}-{_file_timestamp(header.at)}.json",
            content=json.dumps(payload, ensure_ascii=False, indent=2),
        )

    async def delete_event(self, ref: AuditRef) -> None:
        header = await self.resolve(ref)
        await self._delete_chunks(header.chunk.keys)
        index = await self.read_index()
        await self.write_index(h for h in index if h.id != header.id)
        _logger.info("Deleted audit event %s", header.id)

    async def prune(self, keep_last: int) -> int:
        """Delete all but the newest *keep_last* events; returns how many were removed."""
        index = await self.read_index()
        doomed = index[max(keep_last, 0) :]
        for header in doomed:
            await self.delete_event(header)
        return len(doomed)
