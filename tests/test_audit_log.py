from __future__ import annotations

import json

import pytest

from waybill_sync._constants import AUDIT_INDEX_KEY
from waybill_sync.audit import (
    AuditLog,
    CodecError,
    Compressor,
    NullCompressor,
    SoftwareGzipCompressor,
    StreamingGzipCompressor,
    chunk_key,
    probe_codecs,
)
from waybill_sync.config import SyncConfig
from waybill_sync.exceptions import AuditEventNotFoundError, CorruptAuditPayloadError, DecompressorUnavailableError
from waybill_sync.models import AuditAction, AuditEvent, AuditEventHeader, Compression, ImportAuditItem
from waybill_sync.storage import InMemoryKeyValueStore


def _items(count: int) -> list[ImportAuditItem]:
    return [
        ImportAuditItem(
            storage_key="waybills",
            key="waybills",
            id_field="id",
            id_value=f"w{i}",
            action=AuditAction.INSERT,
            label=f"№{i}",
            after_exists=True,
            after_snapshot={"id": f"w{i}", "number": str(i), "routes": [{"from": "A", "to": "B", "km": i % 97}]},
        )
        for i in range(count)
    ]


def _event(event_id: str, count: int = 1) -> AuditEvent:
    return AuditEvent(id=event_id, source_meta={"appId": "waybill-app"}, items=_items(count))


@pytest.mark.asyncio
async def test_ten_thousand_items_round_trip_through_chunks() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store, chunk_size=4096)
    event = _event("big", 10_000)

    header = await log.append_event_chunked(event)

    assert header.chunk.compression == Compression.GZIP
    assert len(header.chunk.keys) > 1
    assert header.chunk.keys[0] == chunk_key("big", 0)
    assert header.item_count == 10_000
    assert header.chunk.total_chars == sum([len(await store.get(key)) for key in header.chunk.keys])

    loaded = await log.load_event_items(header)
    assert [item.to_wire() for item in loaded] == [item.to_wire() for item in event.items]


@pytest.mark.asyncio
async def test_uncompressed_round_trip_when_compression_disabled() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog.from_config(store, SyncConfig(compression_enabled=False, audit_chunk_size=100))

    header = await log.append_event_chunked(_event("plain", 20))

    assert header.chunk.compression == Compression.NONE
    assert json.loads("".join([await store.get(key) for key in header.chunk.keys]))[0]["idValue"] == "w0"
    assert len(await log.load_event_items(header)) == 20


@pytest.mark.asyncio
async def test_streaming_and_software_gzip_are_interchangeable() -> None:
    store = InMemoryKeyValueStore()
    writer = AuditLog(store, codecs={Compression.GZIP: StreamingGzipCompressor(), Compression.NONE: NullCompressor()})
    reader = AuditLog(store, codecs={Compression.GZIP: SoftwareGzipCompressor(), Compression.NONE: NullCompressor()})

    header = await writer.append_event_chunked(_event("e1", 50))

    assert len(await reader.load_event_items(header)) == 50


@pytest.mark.asyncio
async def test_appending_past_cap_evicts_oldest_event_and_chunks() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store, max_events=50)
    headers = [await log.append_event_chunked(_event(f"e{i:02d}")) for i in range(51)]

    index = await log.read_index()

    assert len(index) == 50
    assert index[0].id == "e50"
    assert index[-1].id == "e01"
    assert all(header.id != "e00" for header in index)
    assert headers[0].chunk.keys
    for key in headers[0].chunk.keys:
        assert await store.get(key) is None
    for key in headers[1].chunk.keys:
        assert await store.get(key) is not None


@pytest.mark.asyncio
async def test_missing_decoder_is_reported_distinctly() -> None:
    store = InMemoryKeyValueStore()
    header = await AuditLog(store).append_event_chunked(_event("gz", 3))
    reader = AuditLog(store, codecs={Compression.NONE: NullCompressor()})

    with pytest.raises(DecompressorUnavailableError) as excinfo:
        await reader.load_event_items(header)
    assert excinfo.value.compression == "gzip"


@pytest.mark.asyncio
async def test_invalid_json_after_decompression_is_corruption() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store, compression_enabled=False)
    header = await log.append_event_chunked(_event("bad", 3))
    await store.set(header.chunk.keys[0], "{broken")

    with pytest.raises(CorruptAuditPayloadError) as excinfo:
        await log.load_event_items(header)
    assert excinfo.value.event_id == "bad"


@pytest.mark.asyncio
async def test_damaged_gzip_payload_is_corruption() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store)
    header = await log.append_event_chunked(_event("gzbad", 3))
    await store.set(header.chunk.keys[0], "not base64 at all")

    with pytest.raises(CorruptAuditPayloadError):
        await log.load_event_items(header)


@pytest.mark.asyncio
async def test_missing_chunk_records_are_corruption() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store, chunk_size=64, compression_enabled=False)
    header = await log.append_event_chunked(_event("lost", 3))
    assert header.item_count == 3

    await store.delete(header.chunk.keys[-1])
    with pytest.raises(CorruptAuditPayloadError) as excinfo:
        await log.load_event_items(header)
    assert excinfo.value.event_id == "lost"

    for key in header.chunk.keys:
        await store.delete(key)
    with pytest.raises(CorruptAuditPayloadError):
        await log.load_event_items(header)


@pytest.mark.asyncio
async def test_header_with_items_but_no_chunks_is_corruption() -> None:
    log = AuditLog(InMemoryKeyValueStore())
    header = AuditEventHeader(id="ghost", at="2024-05-06T07:08:09.000Z", item_count=2)

    with pytest.raises(CorruptAuditPayloadError):
        await log.load_event_items(header)
    assert await log.load_event_items(AuditEventHeader(id="empty", at="2024-05-06T07:08:09.000Z")) == []


class _BrokenGzip(StreamingGzipCompressor):
    def compress(self, text: str) -> str:
        raise CodecError("deflate failed")


@pytest.mark.asyncio
async def test_compression_failure_stores_items_uncompressed() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store, codecs={Compression.GZIP: _BrokenGzip(), Compression.NONE: NullCompressor()})

    header = await log.append_event_chunked(_event("plainfallback", 4))

    assert header.chunk.compression == Compression.NONE
    assert [item.id_value for item in await log.load_event_items(header)] == ["w0", "w1", "w2", "w3"]


@pytest.mark.parametrize("codec", [StreamingGzipCompressor(), SoftwareGzipCompressor()])
def test_gzip_codecs_report_unencodable_text_as_codec_error(codec: Compressor) -> None:
    with pytest.raises(CodecError):
        codec.compress("label \ud800")


def test_software_gzip_is_an_explicit_opt_in() -> None:
    assert isinstance(probe_codecs()[Compression.GZIP], StreamingGzipCompressor)
    assert isinstance(probe_codecs(prefer_streaming=False)[Compression.GZIP], SoftwareGzipCompressor)


@pytest.mark.asyncio
async def test_appending_an_existing_event_id_replaces_it() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store, max_events=2, chunk_size=64, compression_enabled=False)
    first = await log.append_event_chunked(_event("dup", 10))
    old_keys = list(first.chunk.keys)

    await log.append_event_chunked(_event("other"))
    second = await log.append_event_chunked(_event("dup", 2))

    assert [header.id for header in await log.read_index()] == ["dup", "other"]
    for key in old_keys[len(second.chunk.keys) :]:
        assert await store.get(key) is None

    # Evicting "other" must leave the chunks of the replacement alone.
    await log.append_event_chunked(_event("newest"))
    index = await log.read_index()
    assert [header.id for header in index] == ["newest", "dup"]
    assert len(await log.load_event_items(index[1])) == 2


@pytest.mark.asyncio
async def test_rewriting_items_drops_stale_chunks() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store, chunk_size=64, compression_enabled=False)
    header = await log.append_event_chunked(_event("e1", 10))
    old_keys = list(header.chunk.keys)

    await log.update_event_items(header, _items(1))

    assert len(header.chunk.keys) < len(old_keys)
    for key in old_keys[len(header.chunk.keys) :]:
        assert await store.get(key) is None
    (stored,) = await log.read_index()
    assert stored.item_count == 1
    assert len(await log.load_event_items(stored)) == 1


@pytest.mark.asyncio
async def test_index_stored_as_json_string_is_tolerated() -> None:
    store = InMemoryKeyValueStore()
    valid = AuditEventHeader(id="e1", at="2024-01-01T00:00:00.000Z").to_wire()
    await store.set(AUDIT_INDEX_KEY, json.dumps([{"bogus": True}, valid]))

    index = await AuditLog(store).read_index()

    assert [header.id for header in index] == ["e1"]


@pytest.mark.asyncio
async def test_export_event_document() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store)
    await log.append_event_chunked(AuditEvent(id="e1", at="2024-05-06T07:08:09.000Z", items=_items(2)))

    exported = await log.export_event("e1")
    document = json.loads(exported.content)

    assert exported.file_name == "audit-event-e1-20240506-070809.json"
    assert set(document) == {"meta", "header", "items"}
    assert document["meta"]["sourceEventId"] == "e1"
    assert document["header"]["itemCount"] == 2
    assert [item["idValue"] for item in document["items"]] == ["w0", "w1"]


@pytest.mark.asyncio
async def test_delete_event_removes_header_and_chunks() -> None:
    store = InMemoryKeyValueStore()
    log = AuditLog(store)
    header = await log.append_event_chunked(_event("e1", 5))
    await log.append_event_chunked(_event("e2", 5))

    await log.delete_event("e1")

    assert [h.id for h in await log.read_index()] == ["e2"]
    for key in header.chunk.keys:
        assert await store.get(key) is None
    with pytest.raises(AuditEventNotFoundError):
        await log.delete_event("e1")


@pytest.mark.asyncio
async def test_prune_keeps_newest_events() -> None:
    log = AuditLog(InMemoryKeyValueStore())
    for i in range(5):
        await log.append_event_chunked(_event(f"e{i}"))

    assert await log.prune(2) == 3
    assert [h.id for h in await log.read_index()] == ["e4", "e3"]
