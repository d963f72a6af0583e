"""Reconciliation of an incoming value into the existing value of one key."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from waybill_sync.models.audit import AuditAction
from waybill_sync.models.importing import UpdateMode
from waybill_sync.reconcile.tree import EntityShape, JsonValue, ScalarShape, Shape, classify, deep_merge, entity_id


@dataclass(frozen=True, slots=True)
class EntityChange:
    """One entity that reconciliation inserted, replaced, merged or deleted."""

    id_value: Any
    action: AuditAction
    before: JsonValue = None
    after: JsonValue = None


@dataclass(slots=True)
class ReconcileOutcome:
    value: JsonValue
    shape: Shape
    changes: list[EntityChange] = field(default_factory=list)


def merge_entities(
    existing: JsonValue,
    incoming: JsonValue,
    mode: UpdateMode = UpdateMode.MERGE,
    insert_new: bool = True,
    delete_missing: bool = False,
    *,
    id_field: str = "id",
    changes: list[EntityChange] | None = None,
) -> list[JsonValue]:
    """Merge an incoming entity list into an existing one.

    Unknown ids are inserted only when ``insert_new`` is set, independently
    of *mode*.  Known ids are left alone (``skip``), replaced
    (``overwrite``) or structurally merged (``merge``).  With
    ``delete_missing`` every existing id absent from *incoming* is dropped.

    Existing entities keep their position and inserted ones are appended,
    but callers must not rely on the output order.
    """
    base = existing if isinstance(existing, list) else []
    inc = incoming if isinstance(incoming, list) else []

    index: dict[Any, JsonValue] = {}
    for item in base:
        index[entity_id(item, id_field)] = item

    for item in inc:
        item_id = entity_id(item, id_field)
        if item_id not in index:
            if insert_new:
                index[item_id] = copy.deepcopy(item)
                if changes is not None:
                    changes.append(EntityChange(item_id, AuditAction.INSERT, None, item))
            continue

        before = index[item_id]
        if mode == UpdateMode.SKIP:
            continue
        if mode == UpdateMode.OVERWRITE:
            after = copy.deepcopy(item)
            action = AuditAction.OVERWRITE
        else:
            after = deep_merge(before, item)
            action = AuditAction.MERGE
        index[item_id] = after
        if changes is not None and after != before:
            changes.append(EntityChange(item_id, action, before, after))

    if delete_missing:
        incoming_ids = {entity_id(item, id_field) for item in inc}
        for item_id in list(index):
            if item_id not in incoming_ids:
                removed = index.pop(item_id)
                if changes is not None:
                    changes.append(EntityChange(item_id, AuditAction.DELETE, removed, None))

    return list(index.values())


def reconcile_value(
    existing: JsonValue,
    incoming: JsonValue,
    mode: UpdateMode = UpdateMode.MERGE,
    insert_new: bool = True,
    delete_missing: bool = False,
    *,
    shape: Shape | None = None,
) -> ReconcileOutcome:
    """Reconcile one key and report the per-entity changes made."""
    shape = shape if shape is not None else classify(existing, incoming)

    if isinstance(shape, EntityShape):
        changes: list[EntityChange] = []
        value = merge_entities(
            existing,
            incoming,
            mode,
            insert_new,
            delete_missing,
            id_field=shape.id_field,
            changes=changes,
        )
        return ReconcileOutcome(value=value, shape=shape, changes=changes)

    # Singleton keys: every mode except merge-of-two-objects yields the incoming value.
    if mode == UpdateMode.MERGE and isinstance(existing, dict) and isinstance(incoming, dict):
        return ReconcileOutcome(value=deep_merge(existing, incoming), shape=ScalarShape())
    return ReconcileOutcome(value=copy.deepcopy(incoming), shape=ScalarShape())


def reconcile(
    existing: JsonValue,
    incoming: JsonValue,
    mode: UpdateMode = UpdateMode.MERGE,
    insert_new: bool = True,
    delete_missing: bool = False,
    *,
    shape: Shape | None = None,
) -> JsonValue:
    """Return the value to persist after merging *incoming* into *existing*."""
    return reconcile_value(existing, incoming, mode, insert_new, delete_missing, shape=shape).value
