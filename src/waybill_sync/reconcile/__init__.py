"""Entity reconciliation.

Decides how an incoming value is merged into the value already stored
under a key, and computes the preview statistics shown before an import.
"""

from waybill_sync.reconcile.diff import analyze_counts, build_sub_items
from waybill_sync.reconcile.labels import build_params, item_label, make_label
from waybill_sync.reconcile.merge import EntityChange, ReconcileOutcome, merge_entities, reconcile, reconcile_value
from waybill_sync.reconcile.tree import (
    EntityShape,
    ScalarShape,
    Shape,
    classify,
    deep_merge,
    entity_id,
    entity_id_field,
    is_entity_array,
)

__all__ = [
    "EntityChange",
    "EntityShape",
    "ReconcileOutcome",
    "ScalarShape",
    "Shape",
    "analyze_counts",
    "build_params",
    "build_sub_items",
    "classify",
    "deep_merge",
    "entity_id",
    "entity_id_field",
    "is_entity_array",
    "item_label",
    "make_label",
    "merge_entities",
    "reconcile",
    "reconcile_value",
]
