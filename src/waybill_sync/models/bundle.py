"""Export bundle model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field

from waybill_sync._constants import DEFAULT_APP_ID
from waybill_sync.models._base import SyncModel, utc_now_iso


class BundleMeta(SyncModel):
    """Metadata header of an export bundle."""

    app_id: str = Field(default=DEFAULT_APP_ID, validation_alias=AliasChoices("appId", "app", "app_id"))
    """Exporting application identifier (older files call this ``app``)."""
    format_version: int = 1
    """Bundle format version; only ever advanced by migrations."""
    created_at: str = Field(default_factory=utc_now_iso)
    app_version: str | None = None
    locale: str | None = None
    keys: list[str] | None = None
    """Keys the exporter selected, when recorded."""
    summary: dict[str, Any] | None = None


class ExportBundle(SyncModel):
    """Versioned container of exported key -> value data."""

    meta: BundleMeta = Field(default_factory=BundleMeta)
    data: dict[str, Any] = Field(default_factory=dict)
