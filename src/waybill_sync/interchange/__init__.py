"""Export bundle codec and format migrations."""

from waybill_sync.interchange.bundle import (
    build_export_bundle,
    dump_bundle,
    export_file_name,
    keys_to_export,
    parse_bundle,
    to_bundle,
)
from waybill_sync.interchange.migrations import (
    EXPORT_FORMAT_VERSION,
    MIGRATIONS,
    apply_migrations,
    rename_aliased_key_list,
    rename_aliased_keys,
)

__all__ = [
    "EXPORT_FORMAT_VERSION",
    "MIGRATIONS",
    "apply_migrations",
    "build_export_bundle",
    "dump_bundle",
    "export_file_name",
    "keys_to_export",
    "parse_bundle",
    "rename_aliased_key_list",
    "rename_aliased_keys",
    "to_bundle",
]
