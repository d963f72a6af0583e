"""JSON tree helpers: shape classification and structural merge.

Values handled here are plain JSON trees (``dict``/``list``/scalars) as
stored in the key-value backend.
"""

from __future__ import annotations

import copy
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, TypeAlias

JsonValue: TypeAlias = Any

_SAMPLE_SIZE = 5
_ID_FIELDS: tuple[str, ...] = ("id", "code")
DEFAULT_ID_FIELD = "id"


@dataclass(frozen=True, slots=True)
class EntityShape:
    """The value is a collection of records identified by ``id_field``."""

    id_field: str = DEFAULT_ID_FIELD


@dataclass(frozen=True, slots=True)
class ScalarShape:
    """The value is a single object or primitive."""


Shape: TypeAlias = EntityShape | ScalarShape


def is_entity_array(value: JsonValue) -> bool:
    """Return ``True`` for a list whose sampled elements all expose ``id`` or ``code``.

    Only the first few elements are inspected.  The empty list counts as an
    entity array.
    """
    if not isinstance(value, list):
        return False
    sample = value[:_SAMPLE_SIZE]
    return all(isinstance(item, dict) and any(name in item for name in _ID_FIELDS) for item in sample)


def entity_id_field(items: Sequence[JsonValue]) -> str | None:
    """Pick the id field of an entity list, preferring ``id`` over ``code``."""
    if not items:
        return DEFAULT_ID_FIELD
    sample = [item for item in items[:_SAMPLE_SIZE] if isinstance(item, dict)]
    for name in _ID_FIELDS:
        if any(name in item for item in sample):
            return name
    return None


def classify(existing: JsonValue, incoming: JsonValue) -> Shape:
    """Classify the value pair stored under one key.

    Either side being an entity array makes the key an entity key.  The id
    field comes from the first non-empty side, incoming first.
    """
    if not (is_entity_array(incoming) or is_entity_array(existing)):
        return ScalarShape()
    for candidate in (incoming, existing):
        if isinstance(candidate, list) and candidate:
            field = entity_id_field(candidate)
            if field is not None:
                return EntityShape(field)
    return EntityShape(DEFAULT_ID_FIELD)


def entity_id(item: JsonValue, id_field: str) -> Any:
    """Id of *item*, or ``None`` for non-objects and records lacking the field."""
    if isinstance(item, dict):
        return item.get(id_field)
    return None


def deep_merge(base: JsonValue, patch: JsonValue) -> JsonValue:
    """Structurally merge *patch* onto *base* without mutating either.

    Two objects merge field by field, recursing only where both sides hold
    objects.  Anywhere else the patch value wins; arrays are replaced
    wholesale, never merged element-wise.  A ``None`` patch keeps *base*.
    """
    if isinstance(base, dict) and isinstance(patch, dict):
        merged: dict[str, Any] = dict(base)
        for key, value in patch.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                merged[key] = deep_merge(current, value)
            else:
                merged[key] = copy.deepcopy(value)
        return merged
    if patch is None:
        return copy.deepcopy(base)
    return copy.deepcopy(patch)
