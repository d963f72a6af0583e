"""Export bundle encoding, decoding and export assembly."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import date
from typing import Any

from pydantic import ValidationError

from waybill_sync._constants import AUDIT_CHUNK_PREFIX, DEFAULT_APP_ID, KEY_BLOCKLIST, LAST_EXPORT_META_KEY
from waybill_sync.config import SyncConfig
from waybill_sync.exceptions import BundleParseError
from waybill_sync.interchange.migrations import EXPORT_FORMAT_VERSION
from waybill_sync.models._base import utc_now_iso
from waybill_sync.models.bundle import BundleMeta, ExportBundle
from waybill_sync.storage.access import StorageAccess

_logger = logging.getLogger(__name__)


def _coerce_version(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    try:
        version = int(float(value))
    except (TypeError, ValueError):
        return 1
    return version if version > 0 else 1


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def to_bundle(parsed: Any) -> ExportBundle:
    """Normalize an arbitrary decoded JSON value into an :class:`ExportBundle`.

    Input already shaped as ``{"meta": {...}, "data": {...}}`` is copied
    field by field, defaulting ``formatVersion`` to 1.  Any other object is
    treated as raw data under a synthetic version 1 header.
    """
    if isinstance(parsed, dict) and isinstance(parsed.get("meta"), dict) and isinstance(parsed.get("data"), dict):
        meta = parsed["meta"]
        keys = meta.get("keys")
        summary = meta.get("summary")
        try:
            return ExportBundle(
                meta=BundleMeta(
                    app_id=_optional_str(meta.get("appId")) or _optional_str(meta.get("app")) or DEFAULT_APP_ID,
                    format_version=_coerce_version(meta.get("formatVersion")),
                    created_at=_optional_str(meta.get("createdAt")) or utc_now_iso(),
                    app_version=_optional_str(meta.get("appVersion")),
                    locale=_optional_str(meta.get("locale")),
                    keys=[str(k) for k in keys] if isinstance(keys, list) else None,
                    summary=dict(summary) if isinstance(summary, dict) else None,
                ),
                data=dict(parsed["data"]),
            )
        except ValidationError as exc:
            raise BundleParseError(f"Invalid bundle header: {exc}") from exc

    if parsed is None:
        parsed = {}
    if not isinstance(parsed, dict):
        raise BundleParseError(f"Import data must be a JSON object, got {type(parsed).__name__}")
    return ExportBundle(meta=BundleMeta(format_version=1), data=dict(parsed))


def parse_bundle(raw: bytes | str) -> ExportBundle:
    """Decode an import file into a (not yet migrated) bundle.

    Raises
    ------
    BundleParseError
        When *raw* is not UTF-8 JSON or has no usable shape.
    """
    try:
        text = raw.decode("utf-8-sig") if isinstance(raw, (bytes, bytearray)) else raw
        parsed = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BundleParseError(f"Import file is not valid JSON: {exc}") from exc
    return to_bundle(parsed)


def keys_to_export(selected: Iterable[str]) -> list[str]:
    """Sorted export key list without bookkeeping and audit chunk keys."""
    keys = set(selected) - KEY_BLOCKLIST
    return sorted(k for k in keys if not k.startswith(AUDIT_CHUNK_PREFIX))


def _summarize(data: dict[str, Any]) -> dict[str, Any]:
    summary: dict[str, Any] = {}
    for key, value in data.items():
        summary[key] = len(value) if isinstance(value, (list, dict)) else (0 if value is None else 1)
    return summary


async def build_export_bundle(access: StorageAccess, selected: Iterable[str], config: SyncConfig) -> ExportBundle:
    """Read the selected keys and wrap them in a current-format bundle.

    Keys without a stored value are left out.  The resulting header is
    remembered under the last-export bookkeeping key.
    """
    data: dict[str, Any] = {}
    for key in keys_to_export(selected):
        value = await access.get_data_for_key(key)
        if value is None or value == []:
            continue
        data[key] = value

    bundle = ExportBundle(
        meta=BundleMeta(
            app_id=config.app_id,
            format_version=EXPORT_FORMAT_VERSION,
            app_version=config.app_version,
            locale=config.locale,
            keys=list(data),
            summary=_summarize(data),
        ),
        data=data,
    )
    await access.store.set(LAST_EXPORT_META_KEY, bundle.meta.to_wire())
    _logger.info("Exported %d keys", len(data))
    return bundle


def dump_bundle(bundle: ExportBundle) -> str:
    """Serialize *bundle* as the indented JSON document offered for download."""
    return json.dumps(bundle.to_wire(), ensure_ascii=False, indent=2)


def export_file_name(day: date | None = None) -> str:
    return f"waybill_backup_{(day or date.today()).isoformat()}.json"
