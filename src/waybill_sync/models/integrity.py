"""Period lock models."""

from __future__ import annotations

import re

from pydantic import Field, field_validator

from waybill_sync.models._base import SyncModel, utc_now_iso

_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_period(value: str) -> str:
    """Return *value* stripped, raising ``ValueError`` unless it is ``YYYY-MM``."""
    period = value.strip()
    if not _PERIOD_RE.match(period):
        raise ValueError(f"period must be YYYY-MM, got {value!r}")
    return period


class PeriodLock(SyncModel):
    """Hash commitment over one month of finalized documents.

    There is no update operation; a lock is only created or deleted.
    """

    id: str
    period: str
    locked_at: str = Field(default_factory=utc_now_iso)
    locked_by_user_id: str
    data_hash: str
    record_count: int
    notes: str | None = None
    signature: str | None = None
    """HMAC-SHA256 over the lock fields, when a signing key is configured."""

    @field_validator("period")
    @classmethod
    def _check_period(cls, value: str) -> str:
        return validate_period(value)


class VerificationResult(SyncModel):
    is_valid: bool
    current_hash: str
    stored_hash: str
    details: str | None = None
