"""Runtime configuration for waybill_sync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from waybill_sync._constants import AUDIT_CHUNK_SIZE, AUDIT_MAX_EVENTS, DEFAULT_APP_ID
from waybill_sync.exceptions import WaybillSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Interchange/audit/integrity configuration.

    Parameters
    ----------
    app_id : str
        Application identifier written into export bundle metadata.
    app_version : str or None
        Application version written into export bundle metadata.
    locale : str or None
        Locale written into export bundle metadata.
    audit_max_events : int
        Number of audit events kept in the index.  Older events are
        evicted together with their chunk records.
    audit_chunk_size : int
        Maximum number of characters stored per audit chunk record.
    analysis_timeout : float
        Seconds the import preview may spend reading current values
        before it degrades to an empty analysis.
    compression_enabled : bool
        Compress audit payloads when a gzip codec is available.
    lock_signing_key : str or None
        Secret used to HMAC-sign period locks.  When ``None`` locks carry
        only the content hash.
    """

    app_id: str = DEFAULT_APP_ID
    app_version: str | None = None
    locale: str | None = None
    audit_max_events: int = AUDIT_MAX_EVENTS
    audit_chunk_size: int = AUDIT_CHUNK_SIZE
    analysis_timeout: float = 10.0
    compression_enabled: bool = True
    lock_signing_key: str | None = None

    def __post_init__(self) -> None:
        if self.audit_max_events <= 0:
            raise WaybillSyncConfigError(f"audit_max_events must be positive, got {self.audit_max_events}")
        if self.audit_chunk_size <= 0:
            raise WaybillSyncConfigError(f"audit_chunk_size must be positive, got {self.audit_chunk_size}")
        if self.analysis_timeout <= 0:
            raise WaybillSyncConfigError(f"analysis_timeout must be positive, got {self.analysis_timeout}")

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from ``WAYBILL_SYNC_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "WAYBILL_SYNC_APP_ID": "app_id",
            "WAYBILL_SYNC_APP_VERSION": "app_version",
            "WAYBILL_SYNC_LOCALE": "locale",
            "WAYBILL_SYNC_LOCK_SIGNING_KEY": "lock_signing_key",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            max_events_env = env.get("WAYBILL_SYNC_AUDIT_MAX_EVENTS")
            if max_events_env is not None and "audit_max_events" not in overrides:
                config_kwargs["audit_max_events"] = int(max_events_env)

            chunk_env = env.get("WAYBILL_SYNC_AUDIT_CHUNK_SIZE")
            if chunk_env is not None and "audit_chunk_size" not in overrides:
                config_kwargs["audit_chunk_size"] = int(chunk_env)

            timeout_env = env.get("WAYBILL_SYNC_ANALYSIS_TIMEOUT")
            if timeout_env is not None and "analysis_timeout" not in overrides:
                config_kwargs["analysis_timeout"] = float(timeout_env)
        except ValueError as exc:
            raise WaybillSyncConfigError(f"invalid numeric setting in environment: {exc}") from exc

        if "compression_enabled" not in overrides:
            config_kwargs["compression_enabled"] = _env_bool(env.get("WAYBILL_SYNC_COMPRESSION_ENABLED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
