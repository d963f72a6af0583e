"""Preview-only comparison of existing and incoming values.

Nothing here writes; the reconciliation write path lives in
:mod:`waybill_sync.reconcile.merge`.
"""

from __future__ import annotations

from collections.abc import Hashable
from typing import Any

from waybill_sync.models.importing import SINGLE_ITEM_ID, ImportStats, ImportSubItem, SubItemStatus
from waybill_sync.reconcile.labels import item_label
from waybill_sync.reconcile.tree import EntityShape, JsonValue, Shape, classify, entity_id


def _count_shared(existing: list[Any], incoming: list[Any]) -> int:
    if all(isinstance(v, Hashable) for v in existing):
        base = set(existing)
        return sum(1 for v in incoming if isinstance(v, Hashable) and v in base)
    return sum(1 for v in incoming if v in existing)


def analyze_counts(existing: JsonValue, incoming: JsonValue, *, shape: Shape | None = None) -> ImportStats:
    """Count existing/incoming/new/updated elements for the preview table."""
    shape = shape if shape is not None else classify(existing, incoming)

    if isinstance(shape, EntityShape):
        base = existing if isinstance(existing, list) else []
        inc = incoming if isinstance(incoming, list) else []
        base_ids = {entity_id(item, shape.id_field) for item in base}
        updated = sum(1 for item in inc if entity_id(item, shape.id_field) in base_ids)
        return ImportStats(
            existing_count=len(base),
            incoming_count=len(inc),
            new_count=len(inc) - updated,
            update_count=updated,
        )

    if isinstance(existing, list) and isinstance(incoming, list):
        updated = _count_shared(existing, incoming)
        return ImportStats(
            existing_count=len(existing),
            incoming_count=len(incoming),
            new_count=len(incoming) - updated,
            update_count=updated,
        )

    if isinstance(existing, dict) and isinstance(incoming, dict):
        updated = sum(1 for name in incoming if name in existing)
        return ImportStats(
            existing_count=len(existing),
            incoming_count=len(incoming),
            new_count=len(incoming) - updated,
            update_count=updated,
        )

    return ImportStats(
        existing_count=0 if existing is None else 1,
        incoming_count=0 if incoming is None else 1,
        new_count=1 if existing is None and incoming is not None else 0,
        update_count=1 if existing is not None and incoming is not None else 0,
    )


def _sub_item_id(value: Any) -> str | int:
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return value
    return str(value)


def build_sub_items(key: str, existing: JsonValue, incoming: JsonValue, *, shape: Shape | None = None) -> list[ImportSubItem]:
    """Classify each incoming element as new, update or same.

    Elements that differ from the stored state start out selected.
    Singleton values produce one sub-item with id ``"single"``.
    """
    shape = shape if shape is not None else classify(existing, incoming)

    if isinstance(shape, EntityShape) and isinstance(incoming, list):
        base = existing if isinstance(existing, list) else []
        base_map = {entity_id(item, shape.id_field): item for item in base}
        sub_items: list[ImportSubItem] = []
        for item in incoming:
            item_id = entity_id(item, shape.id_field)
            if item_id not in base_map:
                status = SubItemStatus.NEW
            elif base_map[item_id] == item:
                status = SubItemStatus.SAME
            else:
                status = SubItemStatus.UPDATE
            sub_items.append(
                ImportSubItem(
                    id=_sub_item_id(item_id),
                    label=item_label(item, key),
                    status=status,
                    selected=status != SubItemStatus.SAME,
                    data=item,
                )
            )
        return sub_items

    if incoming == existing:
        status = SubItemStatus.SAME
    elif existing is None:
        status = SubItemStatus.NEW
    else:
        status = SubItemStatus.UPDATE
    return [
        ImportSubItem(
            id=SINGLE_ITEM_ID,
            label="Объект/Значение",
            status=status,
            selected=status != SubItemStatus.SAME,
            data=incoming,
        )
    ]
