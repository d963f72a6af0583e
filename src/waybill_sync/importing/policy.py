"""Key classification and import policy checks."""

from __future__ import annotations

from waybill_sync._constants import INTERNAL_KEY_PREFIX, KEY_BLOCKLIST, UNKNOWN_STORAGE_PREFIX
from waybill_sync.exceptions import PolicyViolation
from waybill_sync.models.importing import ImportPolicy, ImportRow, KeyCategory, UpdateMode

_DOC_FRAGMENTS = ("waybill", "order", "doc")
_DICT_FRAGMENTS = (
    "route",
    "dict",
    "directory",
    "ref",
    "spr",
    "type",
    "employee",
    "driver",
    "vehicle",
    "org",
    "fuel",
)

ADMIN_IMPORT_POLICY = ImportPolicy(
    allow_categories=None,
    deny_keys=KEY_BLOCKLIST,
    allow_unknown_keys=True,
    allowed_modes=frozenset({UpdateMode.MERGE, UpdateMode.OVERWRITE, UpdateMode.SKIP}),
    allow_delete_missing=True,
)
"""Operator policy: everything except the blocklist."""

USER_IMPORT_POLICY = ImportPolicy(
    allow_categories=frozenset({KeyCategory.DOCS}),
    deny_keys=KEY_BLOCKLIST,
    allow_unknown_keys=False,
    allowed_modes=frozenset({UpdateMode.MERGE, UpdateMode.SKIP}),
    allow_delete_missing=False,
)
"""End-user policy: known document keys only, never destructive."""


def infer_category_by_key_name(key: str) -> KeyCategory:
    """Guess the category of a storage key from its name alone."""
    if key.startswith(UNKNOWN_STORAGE_PREFIX) or key.startswith(INTERNAL_KEY_PREFIX):
        return KeyCategory.UNKNOWN
    lowered = key.lower()
    if any(fragment in lowered for fragment in _DOC_FRAGMENTS):
        return KeyCategory.DOCS
    if lowered.endswith("s") and "bill" in lowered:
        return KeyCategory.DOCS
    if any(fragment in lowered for fragment in _DICT_FRAGMENTS):
        return KeyCategory.DICT
    return KeyCategory.OTHER


def _rejection_reason(row: ImportRow, policy: ImportPolicy) -> str | None:
    if row.key in policy.deny_keys:
        return "key is on the deny list"
    if policy.allow_categories is not None and row.category not in policy.allow_categories:
        return f"category {row.category} is not allowed"
    if not policy.allow_unknown_keys and not row.known:
        return "unknown keys are not allowed"
    return None


def is_row_allowed_by_policy(row: ImportRow, policy: ImportPolicy) -> bool:
    """Whether *policy* permits enabling *row* at all.

    Only gates the row's ``enabled`` flag; sub-item selection is untouched.
    """
    return _rejection_reason(row, policy) is None


def default_update_mode(policy: ImportPolicy) -> UpdateMode:
    """Preferred mode among those allowed: merge, then overwrite, then skip."""
    for mode in (UpdateMode.MERGE, UpdateMode.OVERWRITE):
        if mode in policy.allowed_modes:
            return mode
    return UpdateMode.SKIP


def enforce_policy(row: ImportRow, policy: ImportPolicy) -> None:
    """Raise :class:`PolicyViolation` if an enabled *row* breaks *policy*."""
    if not row.action.enabled:
        return
    reason = _rejection_reason(row, policy)
    if reason is None and row.action.update_mode not in policy.allowed_modes:
        reason = f"update mode {row.action.update_mode} is not allowed"
    if reason is None and row.action.delete_missing and not policy.allow_delete_missing:
        reason = "deleting missing entities is not allowed"
    if reason is not None:
        raise PolicyViolation(f"Import of {row.key!r} rejected: {reason}", key=row.key, reason=reason)
