"""Audit payload codecs.

A codec turns the serialized item list into a string-safe payload and
back.  Available codecs are probed once, when the audit log is built, and
decoding always uses the codec matching the compression recorded in the
event header.
"""

from __future__ import annotations

import base64
import binascii
import importlib.util
import logging
from collections.abc import Mapping
from typing import Protocol

from waybill_sync.models.audit import Compression

_logger = logging.getLogger(__name__)

_STREAM_PIECE = 64 * 1024
_GZIP_WBITS = 31


class CodecError(ValueError):
    """Encoding or decoding failed inside a codec."""


class Compressor(Protocol):
    compression: Compression

    def compress(self, text: str) -> str: ...

    def decompress(self, payload: str) -> str: ...


def _utf8(text: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise CodecError(f"payload is not encodable as UTF-8: {exc}") from exc


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(payload: str) -> bytes:
    try:
        return base64.b64decode(payload.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise CodecError(f"invalid base64 payload: {exc}") from exc


class StreamingGzipCompressor:
    """Gzip via incremental ``zlib`` compress/decompress objects."""

    compression = Compression.GZIP

    def __init__(self, level: int = 6) -> None:
        import zlib

        self._zlib = zlib
        self._level = level

    def compress(self, text: str) -> str:
        raw = _utf8(text)
        stream = self._zlib.compressobj(self._level, self._zlib.DEFLATED, _GZIP_WBITS)
        out: list[bytes] = []
        try:
            for start in range(0, len(raw), _STREAM_PIECE):
                out.append(stream.compress(raw[start : start + _STREAM_PIECE]))
            out.append(stream.flush())
        except self._zlib.error as exc:
            raise CodecError(f"gzip compression failed: {exc}") from exc
        return _b64encode(b"".join(out))

    def decompress(self, payload: str) -> str:
        data = _b64decode(payload)
        stream = self._zlib.decompressobj(_GZIP_WBITS)
        out: list[bytes] = []
        try:
            for start in range(0, len(data), _STREAM_PIECE):
                out.append(stream.decompress(data[start : start + _STREAM_PIECE]))
            out.append(stream.flush())
        except self._zlib.error as exc:
            raise CodecError(f"gzip stream is damaged: {exc}") from exc
        if not stream.eof:
            raise CodecError("gzip stream is truncated")
        try:
            return b"".join(out).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CodecError(f"decompressed payload is not UTF-8: {exc}") from exc


class SoftwareGzipCompressor:
    """Whole-buffer gzip via the :mod:`gzip` module."""

    compression = Compression.GZIP

    def __init__(self, level: int = 6) -> None:
        import gzip

        self._gzip = gzip
        self._level = level

    def compress(self, text: str) -> str:
        return _b64encode(self._gzip.compress(_utf8(text), compresslevel=self._level))

    def decompress(self, payload: str) -> str:
        data = _b64decode(payload)
        try:
            return self._gzip.decompress(data).decode("utf-8")
        except (OSError, EOFError, UnicodeDecodeError) as exc:
            raise CodecError(f"gzip payload is damaged: {exc}") from exc


class NullCompressor:
    """Stores the serialized text as-is."""

    compression = Compression.NONE

    def compress(self, text: str) -> str:
        return text

    def decompress(self, payload: str) -> str:
        return payload


def probe_codecs(*, prefer_streaming: bool = True) -> dict[Compression, Compressor]:
    """Codecs usable in this interpreter, keyed by the compression they produce.

    Both gzip codecs need ``zlib``, so there is no automatic fallback between
    them: :class:`SoftwareGzipCompressor` is used only when asked for with
    ``prefer_streaming=False``.  Payloads from either codec decode with the
    other.
    """
    codecs: dict[Compression, Compressor] = {Compression.NONE: NullCompressor()}
    if importlib.util.find_spec("zlib") is None:
        _logger.warning("zlib is not available; audit payloads will be stored uncompressed")
        return codecs
    codecs[Compression.GZIP] = StreamingGzipCompressor() if prefer_streaming else SoftwareGzipCompressor()
    return codecs


def pick_compressor(codecs: Mapping[Compression, Compressor], *, enabled: bool = True) -> Compressor:
    """Preferred writer among *codecs*: gzip when enabled and available, else none."""
    if enabled and Compression.GZIP in codecs:
        return codecs[Compression.GZIP]
    return codecs.get(Compression.NONE) or NullCompressor()
