"""Policy-gated import pipeline."""

from waybill_sync.importing.apply import ImportApplier
from waybill_sync.importing.policy import (
    ADMIN_IMPORT_POLICY,
    USER_IMPORT_POLICY,
    default_update_mode,
    enforce_policy,
    infer_category_by_key_name,
    is_row_allowed_by_policy,
)
from waybill_sync.importing.preview import ImportPreviewer

__all__ = [
    "ADMIN_IMPORT_POLICY",
    "USER_IMPORT_POLICY",
    "ImportApplier",
    "ImportPreviewer",
    "default_update_mode",
    "enforce_policy",
    "infer_category_by_key_name",
    "is_row_allowed_by_policy",
]
