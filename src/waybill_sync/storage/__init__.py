"""Storage collaborators.

The key-value engine is supplied by the host application; this package
defines its interface, an in-memory implementation, and the entity
repository layer built on top of it.
"""

from waybill_sync.storage.access import StorageAccess, is_heavy_key, is_repo_key
from waybill_sync.storage.memory import InMemoryKeyValueStore
from waybill_sync.storage.protocols import KeyValueStore
from waybill_sync.storage.repository import EntityRepository, ListQuery, ListResult, RepositoryRegistry

__all__ = [
    "EntityRepository",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "ListQuery",
    "ListResult",
    "RepositoryRegistry",
    "StorageAccess",
    "is_heavy_key",
    "is_repo_key",
]
