"""Helpers for safe debug logging.

Imported bundles and audit snapshots routinely carry user records
(password hashes, PINs, session tokens) and can hold thousands of
entities.  :func:`redact_for_log` masks sensitive fields and bounds the
size of what ends up in DEBUG output.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

REDACTED = "<redacted>"

# Matched as substrings of the lower-cased field name.
_SENSITIVE_FRAGMENTS: tuple[str, ...] = (
    "password",
    "token",
    "secret",
    "signingkey",
    "authorization",
    "cookie",
)
_SENSITIVE_EXACT: frozenset[str] = frozenset({"pin", "pincode"})

_MAX_DEPTH = 20


def is_sensitive_field(name: str) -> bool:
    lowered = name.lower()
    return lowered in _SENSITIVE_EXACT or any(fragment in lowered for fragment in _SENSITIVE_FRAGMENTS)


def _bound_text(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}…<truncated>"


def redact_for_log(value: Any, *, max_string: int = 512, max_items: int = 20, _depth: int = 0) -> Any:
    """Return a redacted, size-bounded copy of *value* for debug logs.

    Mappings keep their keys; values under sensitive keys become
    ``"<redacted>"``.  Sequences longer than *max_items* are cut and end
    with a ``"<+N more>"`` marker.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    match value:
        case None | bool() | int() | float():
            return value
        case str():
            return _bound_text(value, max_string)
        case bytes() | bytearray():
            return f"<bytes:{len(value)}b>"

    def _inner(item: Any) -> Any:
        return redact_for_log(item, max_string=max_string, max_items=max_items, _depth=_depth + 1)

    if isinstance(value, Mapping):
        return {str(k): REDACTED if is_sensitive_field(str(k)) else _inner(v) for k, v in value.items()}

    if isinstance(value, Sequence):
        head = [_inner(item) for item in value[:max_items]]
        hidden = len(value) - len(head)
        return [*head, f"<+{hidden} more>"] if hidden > 0 else head

    return repr(value)
