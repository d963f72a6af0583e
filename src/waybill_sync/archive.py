"""Archiving of finalized waybills and audit log pruning."""

from __future__ import annotations

import json
import logging

from waybill_sync._constants import COMPLETED_STATUS, POSTED_STATUS, WAYBILLS
from waybill_sync.audit.log import AuditLog
from waybill_sync.models._base import utc_now_iso
from waybill_sync.models.archive import ArchiveResult, ArchiveStats, YearStats
from waybill_sync.storage.repository import RepositoryRegistry

_logger = logging.getLogger(__name__)

FINALIZED_STATUSES = frozenset({POSTED_STATUS, COMPLETED_STATUS})
UNKNOWN_YEAR = "Unknown"


def _year_of(waybill: dict) -> str:
    date = waybill.get("date")
    return date[:4] if isinstance(date, str) and date else UNKNOWN_YEAR


async def archive_stats(registry: RepositoryRegistry, audit_log: AuditLog) -> ArchiveStats:
    """Waybill counts and rough sizes per year, plus the audit event count."""
    by_year: dict[str, YearStats] = {}
    for waybill in await registry.get(WAYBILLS).all():
        stats = by_year.setdefault(_year_of(waybill), YearStats())
        stats.total += 1
        if waybill.get("status") in FINALIZED_STATUSES:
            stats.posted += 1
        stats.size += len(json.dumps(waybill, ensure_ascii=False, separators=(",", ":")))
    return ArchiveStats(waybills_by_year=by_year, audit_events=len(await audit_log.read_index()))


async def archive_year(registry: RepositoryRegistry, year: str) -> ArchiveResult:
    """Remove the finalized waybills of *year* and return them as an archive document.

    Drafts are never archived.  Nothing is removed when nothing matches.
    """
    repo = registry.get(WAYBILLS)
    doomed = [
        waybill
        for waybill in await repo.all()
        if _year_of(waybill) == year and waybill.get("status") in FINALIZED_STATUSES
    ]
    if not doomed:
        return ArchiveResult(year=year)

    document = {
        "meta": {
            "type": "archive",
            "entity": WAYBILLS,
            "year": year,
            "count": len(doomed),
            "createdAt": utc_now_iso(),
        },
        "data": doomed,
    }
    content = json.dumps(document, ensure_ascii=False, indent=2)
    await repo.remove_bulk(waybill.get("id") for waybill in doomed)
    _logger.info("Archived %d waybill(s) of %s", len(doomed), year)
    return ArchiveResult(year=year, count=len(doomed), file_name=f"archive_waybills_{year}.json", content=content)


async def prune_audit_log(audit_log: AuditLog, keep_last: int) -> int:
    """Delete all but the newest *keep_last* audit events; returns how many were deleted."""
    removed = await audit_log.prune(keep_last)
    if removed:
        _logger.info("Pruned %d audit event(s), kept the newest %d", removed, keep_last)
    return removed
