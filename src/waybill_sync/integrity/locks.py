"""Period locks: hash commitments over a month of finalized documents."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from waybill_sync._constants import PERIOD_LOCKS, POSTED_STATUS, STOCK_TRANSACTIONS, WAYBILLS
from waybill_sync.exceptions import EmptyPeriodError, InvalidPeriodError, PeriodAlreadyLockedError, PeriodLockNotFoundError
from waybill_sync.models.integrity import PeriodLock, VerificationResult, validate_period
from waybill_sync.storage.repository import EntityRepository, ListQuery, RepositoryRegistry

_logger = logging.getLogger(__name__)

UI_ONLY_FIELDS = frozenset({"__ui_selected"})
COUNT_MISMATCH = "count_mismatch"


@dataclass(frozen=True, slots=True)
class LockScope:
    """One entity key whose finalized records are covered by a period lock."""

    key: str
    status: str = POSTED_STATUS
    date_field: str = "date"

    def matches(self, record: dict[str, Any], period: str) -> bool:
        date = record.get(self.date_field)
        return isinstance(date, str) and date.startswith(period) and record.get("status") == self.status


DEFAULT_LOCK_SCOPES: tuple[LockScope, ...] = (LockScope(WAYBILLS), LockScope(STOCK_TRANSACTIONS))


def canonicalize(value: Any) -> Any:
    """Recursively sort object keys and drop UI-only fields."""
    if isinstance(value, dict):
        return {key: canonicalize(value[key]) for key in sorted(value) if key not in UI_ONLY_FIELDS}
    if isinstance(value, list):
        return [canonicalize(item) for item in value]
    return value


def compute_data_hash(records: Sequence[Any]) -> tuple[str, int]:
    """SHA-256 hex digest and record count of *records*.

    Records are ordered by the string form of their ``id`` (stable for
    equal ids), canonicalized and serialized as compact JSON.
    """
    ordered = sorted(records, key=lambda record: str(record.get("id") or "") if isinstance(record, dict) else "")
    text = json.dumps(canonicalize(ordered), ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(text.encode("utf-8")).hexdigest(), len(ordered)


def _signature_payload(lock: PeriodLock) -> bytes:
    fields = (lock.id, lock.period, lock.locked_at, lock.locked_by_user_id, lock.data_hash, str(lock.record_count))
    return "|".join(fields).encode("utf-8")


def sign_lock(lock: PeriodLock, key: bytes) -> str:
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(_signature_payload(lock))
    return mac.finalize().hex()


def verify_lock_signature(lock: PeriodLock, key: bytes) -> bool:
    if not lock.signature:
        return False
    try:
        expected = bytes.fromhex(lock.signature)
    except ValueError:
        return False
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(_signature_payload(lock))
    try:
        mac.verify(expected)
    except InvalidSignature:
        return False
    return True


class PeriodLockManager:
    """Close, verify and reopen accounting periods.

    The manager only produces and checks hashes; refusing edits to
    documents of a locked period is up to the caller, via
    :meth:`is_period_locked`.
    """

    def __init__(
        self,
        registry: RepositoryRegistry,
        *,
        scopes: Sequence[LockScope] = DEFAULT_LOCK_SCOPES,
        signing_key: bytes | None = None,
    ) -> None:
        self._registry = registry
        self._scopes = tuple(scopes)
        self._signing_key = signing_key

    @property
    def _locks(self) -> EntityRepository:
        return self._registry.get(PERIOD_LOCKS)

    async def collect_period_records(self, period: str) -> list[dict[str, Any]]:
        """Finalized records of every scope dated within *period*."""
        batches = await asyncio.gather(*(self._registry.get(scope.key).all() for scope in self._scopes))
        records: list[dict[str, Any]] = []
        for scope, batch in zip(self._scopes, batches, strict=True):
            records.extend(record for record in batch if scope.matches(record, period))
        return records

    async def list_locks(self) -> list[PeriodLock]:
        """All locks, newest period first."""
        raw = await self._locks.all()
        locks = [PeriodLock.model_validate(entry) for entry in raw]
        return sorted(locks, key=lambda lock: lock.period, reverse=True)

    async def get_lock(self, lock_id: str) -> PeriodLock:
        entry = await self._locks.get_by_id(lock_id)
        if entry is None:
            raise PeriodLockNotFoundError(f"Period lock not found: {lock_id}", lock_id=lock_id)
        return PeriodLock.model_validate(entry)

    async def close_period(self, period: str, user_id: str, notes: str | None = None) -> PeriodLock:
        """Hash the finalized documents of *period* and store a lock for it."""
        try:
            period = validate_period(period)
        except ValueError as exc:
            raise InvalidPeriodError(str(exc), period=period) from exc
        existing = await self._locks.list(ListQuery(page_size=1, predicate=lambda entry: entry.get("period") == period))
        if existing.total:
            raise PeriodAlreadyLockedError(f"Period {period} is already closed", period=period)

        records = await self.collect_period_records(period)
        if not records:
            raise EmptyPeriodError(f"No posted documents in period {period}", period=period)

        data_hash, count = await asyncio.to_thread(compute_data_hash, records)
        lock = PeriodLock(
            id=str(uuid.uuid4()),
            period=period,
            locked_by_user_id=user_id,
            data_hash=data_hash,
            record_count=count,
            notes=notes,
        )
        if self._signing_key is not None:
            lock.signature = sign_lock(lock, self._signing_key)
        await self._locks.create(lock.to_wire())
        _logger.info("Closed period %s (%d records, hash %s)", period, count, data_hash[:12])
        return lock

    async def verify_period(self, lock_id: str) -> VerificationResult:
        """Recompute the hash of a locked period and compare it to the stored one."""
        lock = await self.get_lock(lock_id)
        if self._signing_key is not None and not verify_lock_signature(lock, self._signing_key):
            _logger.warning("Period lock %s has an invalid signature", lock.id)
            return VerificationResult(
                is_valid=False,
                current_hash=lock.data_hash,
                stored_hash=lock.data_hash,
                details="Lock record signature does not match; the lock itself was altered",
            )

        records = await self.collect_period_records(lock.period)
        if len(records) != lock.record_count:
            return VerificationResult(
                is_valid=False,
                current_hash=COUNT_MISMATCH,
                stored_hash=lock.data_hash,
                details=f"Record count changed: was {lock.record_count}, now {len(records)}",
            )

        current_hash, _ = await asyncio.to_thread(compute_data_hash, records)
        result = VerificationResult(
            is_valid=current_hash == lock.data_hash,
            current_hash=current_hash,
            stored_hash=lock.data_hash,
        )
        if not result.is_valid:
            _logger.warning("Period %s is compromised: hash %s != %s", lock.period, current_hash, lock.data_hash)
        return result

    async def delete_period_lock(self, lock_id: str) -> PeriodLock:
        """Remove a lock, reopening its period; returns the deleted lock."""
        lock = await self.get_lock(lock_id)
        await self._locks.remove(lock.id)
        _logger.info("Reopened period %s (lock %s)", lock.period, lock.id)
        return lock

    async def is_period_locked(self, date_str: str | None) -> bool:
        """Whether the month of a ``YYYY-MM[-DD]`` date has a lock."""
        if not date_str or len(date_str) < 7:
            return False
        period = date_str[:7]
        return any(lock.period == period for lock in await self.list_locks())
