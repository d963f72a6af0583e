"""Custom exception hierarchy for waybill_sync."""

from __future__ import annotations

from collections.abc import Sequence


class WaybillSyncError(Exception):
    """Base exception for all waybill_sync errors."""


class WaybillSyncConfigError(WaybillSyncError):
    """Invalid or missing configuration."""


class BundleParseError(WaybillSyncError):
    """Import file is not valid JSON or does not have a usable bundle shape."""


class MigrationGapError(WaybillSyncError):
    """No migration is registered between the bundle version and the current format."""

    def __init__(self, message: str, *, from_version: int, target_version: int) -> None:
        self.from_version = from_version
        self.target_version = target_version
        super().__init__(message)


class PolicyViolation(WaybillSyncError):
    """An enabled import row is not permitted by the active import policy.

    The preview phase never raises this; it simply disables the row.  It is
    raised by the apply phase when a caller re-enabled a rejected row or
    picked a mode the policy does not allow.
    """

    def __init__(self, message: str, *, key: str, reason: str = "") -> None:
        self.key = key
        self.reason = reason
        super().__init__(message)


class AuditError(WaybillSyncError):
    """Base class for audit trail failures."""


class DecompressorUnavailableError(AuditError):
    """The audit payload was written compressed but no matching decoder exists."""

    def __init__(self, message: str, *, compression: str) -> None:
        self.compression = compression
        super().__init__(message)


class CorruptAuditPayloadError(AuditError):
    """The audit payload could not be decoded or parsed.

    Raised when decompression succeeds but the text is not valid JSON, or
    when the stored base64/gzip stream itself is damaged.
    """

    def __init__(self, message: str, *, event_id: str = "") -> None:
        self.event_id = event_id
        super().__init__(message)


class AuditEventNotFoundError(AuditError):
    """The referenced audit event is not present in the index."""

    def __init__(self, message: str, *, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(message)


class PartialApplyFailure(WaybillSyncError):
    """Import apply aborted after some keys were already written.

    ``applied_keys`` stay applied.  The pre-apply backup stored under
    ``backup_key`` is the recovery point; the original exception is
    available as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        applied_keys: Sequence[str],
        failed_key: str,
        backup_key: str,
        audit_event_id: str | None = None,
    ) -> None:
        self.applied_keys = list(applied_keys)
        self.failed_key = failed_key
        self.backup_key = backup_key
        self.audit_event_id = audit_event_id
        super().__init__(message)


class IntegrityError(WaybillSyncError):
    """Base class for period-lock failures."""


class InvalidPeriodError(IntegrityError):
    """The period is not a calendar month in ``YYYY-MM`` form."""

    def __init__(self, message: str, *, period: str) -> None:
        self.period = period
        super().__init__(message)


class PeriodAlreadyLockedError(IntegrityError):
    """The period already has a lock."""

    def __init__(self, message: str, *, period: str) -> None:
        self.period = period
        super().__init__(message)


class EmptyPeriodError(IntegrityError):
    """There are no finalized documents in the period to lock."""

    def __init__(self, message: str, *, period: str) -> None:
        self.period = period
        super().__init__(message)


class PeriodLockNotFoundError(IntegrityError):
    """The referenced period lock does not exist."""

    def __init__(self, message: str, *, lock_id: str) -> None:
        self.lock_id = lock_id
        super().__init__(message)
