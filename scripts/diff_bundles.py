#!/usr/bin/env python3
"""Compare two waybill export bundles key by key.

Both files are migrated to the current format first, so an old backup can
be compared against a fresh export.

Usage
-----
    python scripts/diff_bundles.py old.json new.json
    python scripts/diff_bundles.py --details old.json new.json
    python scripts/diff_bundles.py --key waybills old.json new.json
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

from waybill_sync.exceptions import WaybillSyncError
from waybill_sync.interchange import apply_migrations, parse_bundle
from waybill_sync.models import ExportBundle, SubItemStatus
from waybill_sync.reconcile import EntityShape, build_sub_items, classify, entity_id

MAX_LABEL_WIDTH = 60


def _truncate(text: str, width: int = MAX_LABEL_WIDTH) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


def _load(path: Path) -> ExportBundle:
    return apply_migrations(parse_bundle(path.read_bytes()))


def _removed_ids(old: Any, new: Any) -> list[Any]:
    shape = classify(old, new)
    if not isinstance(shape, EntityShape) or not isinstance(old, list):
        return []
    new_ids = {entity_id(item, shape.id_field) for item in new or []}
    return [entity_id(item, shape.id_field) for item in old if entity_id(item, shape.id_field) not in new_ids]


def diff_key(key: str, old: Any, new: Any) -> tuple[dict[str, int], list[tuple[str, str]]]:
    """Status counts and ``(status, label)`` lines for one key."""
    counts = {"new": 0, "update": 0, "same": 0, "removed": 0}
    lines: list[tuple[str, str]] = []
    if new is not None:
        for item in build_sub_items(key, old, new):
            counts[item.status] += 1
            if item.status != SubItemStatus.SAME:
                lines.append((str(item.status), f"{item.id}: {item.label}"))
    for removed in _removed_ids(old, new):
        counts["removed"] += 1
        lines.append(("removed", str(removed)))
    if new is None and old is not None:
        counts["removed"] += 1
        lines.append(("removed", "<whole key>"))
    return counts, lines


def main() -> int:
    parser = argparse.ArgumentParser(description="Diff two waybill export bundles.")
    parser.add_argument("old", help="Older bundle file")
    parser.add_argument("new", help="Newer bundle file")
    parser.add_argument("--key", action="append", default=[], help="Only compare this key (repeatable)")
    parser.add_argument("--details", action="store_true", help="List every changed entity")
    args = parser.parse_args()

    file_old, file_new = Path(args.old), Path(args.new)
    try:
        old, new = _load(file_old), _load(file_new)
    except (OSError, WaybillSyncError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    print(f"Old: {file_old.name} (v{old.meta.format_version}, {old.meta.created_at})")
    print(f"New: {file_new.name} (v{new.meta.format_version}, {new.meta.created_at})")
    print()

    keys = args.key or sorted(set(old.data) | set(new.data))
    results = [(key, *diff_key(key, old.data.get(key), new.data.get(key))) for key in keys]
    changed = [r for r in results if r[1]["new"] or r[1]["update"] or r[1]["removed"]]

    if not changed:
        print("No differences found.")
        return 0

    key_w = max(max(len(key) for key, _, _ in changed), 3)
    header = f"{'Key':<{key_w}}  {'New':>6}  {'Update':>6}  {'Same':>6}  {'Removed':>7}"
    print(header)
    print("─" * len(header))
    for key, counts, lines in changed:
        print(
            f"{key:<{key_w}}  {counts['new']:>6}  {counts['update']:>6}  {counts['same']:>6}  {counts['removed']:>7}"
        )
        if args.details:
            for status, label in lines:
                print(f"    {status:<8} {_truncate(label)}")

    print(f"\n{len(changed)} key(s) differ.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
