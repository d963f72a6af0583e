"""Structural interfaces of the storage collaborators."""

from __future__ import annotations

from typing import Any, Protocol


class KeyValueStore(Protocol):
    """Async key-value backend holding JSON-compatible values.

    The storage engine itself is provided by the host application; any
    object with these four coroutines can be passed in.  ``get`` returns
    ``None`` for a missing key and ``delete`` of a missing key is a no-op.
    """

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list_keys(self) -> list[str]: ...
