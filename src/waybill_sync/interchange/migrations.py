"""Export bundle format migrations.

Each migration takes a bundle at version ``N`` and returns a new bundle at
version ``N + 1``; the input is never modified.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from waybill_sync._constants import KEY_ALIASES
from waybill_sync.exceptions import MigrationGapError
from waybill_sync.models.bundle import ExportBundle

_logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = 2

Migration = Callable[[ExportBundle], ExportBundle]


def rename_aliased_keys(data: Mapping[str, object], aliases: Mapping[str, str] = KEY_ALIASES) -> dict[str, object]:
    """Move values from old key names to current ones unless the current key is already present."""
    renamed = dict(data)
    for old_key, new_key in aliases.items():
        if old_key in renamed and new_key not in renamed:
            renamed[new_key] = renamed.pop(old_key)
    return renamed


def rename_aliased_key_list(keys: list[str], aliases: Mapping[str, str] = KEY_ALIASES) -> list[str]:
    """Same renaming as :func:`rename_aliased_keys`, applied to a list of key names."""
    new_names = {old: new for new, old in rename_aliased_keys({key: key for key in keys}, aliases).items()}
    return [new_names[key] for key in keys]


def _migrate_v1_to_v2(bundle: ExportBundle) -> ExportBundle:
    update: dict[str, object] = {"format_version": 2}
    if bundle.meta.keys is not None:
        update["keys"] = rename_aliased_key_list(bundle.meta.keys)
    meta = bundle.meta.model_copy(update=update, deep=True)
    return ExportBundle(meta=meta, data=rename_aliased_keys(bundle.data))


MIGRATIONS: dict[int, Migration] = {
    1: _migrate_v1_to_v2,
}


def apply_migrations(
    bundle: ExportBundle,
    *,
    migrations: Mapping[int, Migration] | None = None,
    target_version: int = EXPORT_FORMAT_VERSION,
) -> ExportBundle:
    """Advance *bundle* to *target_version*.

    Bundles already at (or beyond) the target are returned unchanged.

    Raises
    ------
    MigrationGapError
        When no migration is registered for an intermediate version, or a
        migration fails to advance the version.
    """
    registry = MIGRATIONS if migrations is None else migrations
    current = bundle
    while current.meta.format_version < target_version:
        version = current.meta.format_version
        migration = registry.get(version)
        if migration is None:
            raise MigrationGapError(
                f"No migration registered from format version {version} to {target_version}",
                from_version=version,
                target_version=target_version,
            )
        migrated = migration(current)
        if migrated.meta.format_version <= version:
            raise MigrationGapError(
                f"Migration from format version {version} did not advance the version",
                from_version=version,
                target_version=target_version,
            )
        _logger.debug("Migrated bundle from format %d to %d", version, migrated.meta.format_version)
        current = migrated
    return current
