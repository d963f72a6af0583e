"""Import preview/apply models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import ConfigDict, Field

from waybill_sync.models._base import SyncModel

SINGLE_ITEM_ID = "single"
"""Sub-item id used for keys holding one value rather than an entity collection."""


class KeyCategory(StrEnum):
    DOCS = "docs"
    DICT = "dict"
    OTHER = "other"
    UNKNOWN = "unknown"


class UpdateMode(StrEnum):
    SKIP = "skip"
    OVERWRITE = "overwrite"
    MERGE = "merge"


class SubItemStatus(StrEnum):
    NEW = "new"
    UPDATE = "update"
    SAME = "same"


class ImportAction(SyncModel):
    """What the operator asked the apply phase to do with one key."""

    enabled: bool = True
    insert_new: bool = True
    update_mode: UpdateMode = UpdateMode.MERGE
    delete_missing: bool = False


class ImportStats(SyncModel):
    existing_count: int = 0
    incoming_count: int = 0
    new_count: int = 0
    update_count: int = 0


class ImportSubItem(SyncModel):
    """One incoming entity (or the whole value of a singleton key).

    Recomputed on every preview pass and never persisted.
    """

    id: str | int
    label: str
    status: SubItemStatus
    selected: bool = False
    data: Any = None


class ImportRow(SyncModel):
    """Preview of one bundle key."""

    key: str
    category: KeyCategory
    known: bool
    incoming: Any = None
    action: ImportAction = Field(default_factory=ImportAction)
    stats: ImportStats = Field(default_factory=ImportStats)
    sub_items: list[ImportSubItem] = Field(default_factory=list)

    def selected_ids(self) -> set[str]:
        """Ids of the selected sub-items, as strings."""
        return {str(item.id) for item in self.sub_items if item.selected}

    def select_all(self) -> None:
        for item in self.sub_items:
            item.selected = True

    def select_none(self) -> None:
        for item in self.sub_items:
            item.selected = False

    def select(self, ids: set[str]) -> None:
        """Select exactly the sub-items whose id (as string) is in *ids*."""
        for item in self.sub_items:
            item.selected = str(item.id) in ids

    def set_mode(self, mode: UpdateMode, *, delete_missing: bool | None = None) -> None:
        self.action.update_mode = mode
        if delete_missing is not None:
            self.action.delete_missing = delete_missing


class ImportPolicy(SyncModel):
    """Operator policy gating which rows an import session may enable.

    Immutable for the lifetime of an import session.
    """

    model_config = ConfigDict(frozen=True)

    allow_categories: frozenset[KeyCategory] | None = None
    """Categories that may be imported, or ``None`` for all."""
    deny_keys: frozenset[str] = frozenset()
    allow_unknown_keys: bool = True
    allowed_modes: frozenset[UpdateMode] = frozenset(UpdateMode)
    allow_delete_missing: bool = True


class ImportResult(SyncModel):
    """Outcome of a completed import apply."""

    event_id: str
    applied_keys: list[str] = Field(default_factory=list)
    audit_item_count: int = 0
    backup_key: str
