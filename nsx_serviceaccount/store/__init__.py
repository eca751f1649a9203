"""
The store module holds the declarative state of NSXServiceAccount resources,
as the cluster API server would.

- Uses NamespacedName as the key for all objects.
- Every update is a compare-and-swap on the object's resource version.
- Objects with finalizers are only removed once the finalizers are cleared.

This abstract interface allows for various implementations (in-memory, api server, etc.).
"""

from .store import Store, StoreEvent
from .in_memory import InMemoryStore

__all__ = [
    "Store",
    "StoreEvent",
    "InMemoryStore",
]
