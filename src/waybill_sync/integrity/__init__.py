"""Period locking and tamper detection."""

from waybill_sync.integrity.locks import (
    DEFAULT_LOCK_SCOPES,
    LockScope,
    PeriodLockManager,
    canonicalize,
    compute_data_hash,
    sign_lock,
    verify_lock_signature,
)

__all__ = [
    "DEFAULT_LOCK_SCOPES",
    "LockScope",
    "PeriodLockManager",
    "canonicalize",
    "compute_data_hash",
    "sign_lock",
    "verify_lock_signature",
]
