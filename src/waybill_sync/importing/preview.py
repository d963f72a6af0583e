"""Import analysis: turn a bundle into editable preview rows."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from waybill_sync._constants import KNOWN_KEYS
from waybill_sync.config import SyncConfig
from waybill_sync.importing.policy import ADMIN_IMPORT_POLICY, default_update_mode, infer_category_by_key_name, is_row_allowed_by_policy
from waybill_sync.models.bundle import ExportBundle
from waybill_sync.models.importing import ImportAction, ImportPolicy, ImportRow, ImportStats
from waybill_sync.reconcile.diff import analyze_counts, build_sub_items
from waybill_sync.reconcile.tree import classify
from waybill_sync.storage.access import StorageAccess

_logger = logging.getLogger(__name__)


class ImportPreviewer:
    """Compares a bundle against the store and proposes per-key actions."""

    def __init__(self, access: StorageAccess, config: SyncConfig | None = None) -> None:
        self._access = access
        self._config = config or SyncConfig()

    async def _read_current(self, keys: list[str]) -> list[Any]:
        results = await asyncio.gather(
            *(self._access.get_data_for_key(key, skip_heavy=True, missing_as_empty=False) for key in keys),
            return_exceptions=True,
        )
        values: list[Any] = []
        for key, result in zip(keys, results, strict=True):
            if isinstance(result, Exception):
                _logger.warning("Could not read %s during import analysis: %s", key, result)
                values.append(None)
            else:
                values.append(result)
        return values

    async def read_current_values(self, keys: list[str]) -> list[Any]:
        """Current stored values of *keys*; absent keys and a timed-out read come back as ``None``."""
        try:
            return await asyncio.wait_for(self._read_current(keys), timeout=self._config.analysis_timeout)
        except TimeoutError:
            _logger.warning(
                "Import analysis timed out after %.1fs; comparing %d key(s) against empty data",
                self._config.analysis_timeout,
                len(keys),
            )
            return [None for _ in keys]

    @staticmethod
    def build_row(key: str, current: Any, incoming: Any, policy: ImportPolicy) -> ImportRow:
        """Preview row for one key, disabled when *policy* rejects it."""
        row = ImportRow(
            key=key,
            category=infer_category_by_key_name(key),
            known=key in KNOWN_KEYS,
            incoming=incoming,
            action=ImportAction(enabled=True, insert_new=True, update_mode=default_update_mode(policy)),
        )
        try:
            shape = classify(current, incoming)
            row.stats = analyze_counts(current, incoming, shape=shape)
            row.sub_items = build_sub_items(key, current, incoming, shape=shape)
        except Exception:  # noqa: BLE001
            _logger.warning("Could not analyze %s; showing it without statistics", key, exc_info=True)
            row.stats = ImportStats()
            row.sub_items = []
        if not is_row_allowed_by_policy(row, policy):
            row.action.enabled = False
        return row

    async def analyze(self, bundle: ExportBundle, policy: ImportPolicy = ADMIN_IMPORT_POLICY) -> list[ImportRow]:
        """One :class:`ImportRow` per bundle key, in bundle order."""
        keys = list(bundle.data)
        current_values = await self.read_current_values(keys)
        rows = [
            self.build_row(key, current, bundle.data[key], policy)
            for key, current in zip(keys, current_values, strict=True)
        ]
        _logger.debug(
            "Analyzed %d key(s); %d enabled by policy",
            len(rows),
            sum(1 for row in rows if row.action.enabled),
        )
        return rows
