"""Base model shared by every persisted/exported record.

Every record inherits from :class:`SyncModel` which provides:

* ``alias_generator=to_camel`` so snake_case fields are stored and
  exported under the camelCase keys the application has always used
  (``formatVersion``, ``beforeSnapshot``, ...).
* ``populate_by_name`` so code can construct models with field names.
* :meth:`SyncModel.to_wire` producing the JSON-safe dict written to the
  key-value store.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SyncModel(BaseModel):
    """Base for waybill_sync records."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump as a JSON-safe dict with camelCase keys, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
