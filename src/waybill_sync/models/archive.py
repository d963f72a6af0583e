"""Archive maintenance models."""

from __future__ import annotations

from pydantic import Field

from waybill_sync.models._base import SyncModel


class YearStats(SyncModel):
    total: int = 0
    posted: int = 0
    size: int = 0
    """Rough serialized size in characters."""


class ArchiveStats(SyncModel):
    waybills_by_year: dict[str, YearStats] = Field(default_factory=dict)
    audit_events: int = 0


class ArchiveResult(SyncModel):
    """Waybills moved out of the store; ``content`` is the archive JSON document."""

    year: str
    count: int = 0
    file_name: str | None = None
    content: str | None = None
