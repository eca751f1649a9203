"""Store module for the declarative state of NSXServiceAccount resources."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum

from nsx_serviceaccount.manifest import NamespacedName, NSXServiceAccount


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    OBJECT_UPDATED = "object_updated"
    STATUS_UPDATED = "status_updated"
    OBJECT_DELETED = "object_deleted"


class Store(ABC):
    """Abstract base class for the declarative object store.

    Every mutation is a compare-and-swap on the resource version of the
    object passed in. Objects returned by the store are copies owned by the
    caller.
    """

    @abstractmethod
    async def get_object(self, key: NamespacedName) -> NSXServiceAccount | None:
        """Retrieve an object by key, or None when it does not exist."""

    @abstractmethod
    async def list_objects(self) -> list[NSXServiceAccount]:
        """List all objects in the store."""

    @abstractmethod
    async def create_object(self, obj: NSXServiceAccount) -> NSXServiceAccount:
        """Add a new object to the store.

        Raises:
            AlreadyExistsError: If an object with the same key exists.
        """

    @abstractmethod
    async def update_object(self, obj: NSXServiceAccount) -> NSXServiceAccount:
        """Persist the metadata and spec of an object.

        Returns:
            The stored object with its new resource version.

        Raises:
            ConflictError: If the resource version of obj is stale.
            ObjectNotFoundError: If the object no longer exists.
        """

    @abstractmethod
    async def update_status(self, obj: NSXServiceAccount) -> NSXServiceAccount:
        """Persist only the status of an object.

        Raises:
            ConflictError: If the resource version of obj is stale.
            ObjectNotFoundError: If the object no longer exists.
        """

    @abstractmethod
    async def delete_object(self, key: NamespacedName) -> None:
        """Request deletion of an object.

        Objects carrying finalizers are marked with a deletion timestamp and
        removed once their last finalizer is cleared.
        """

    @abstractmethod
    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamespacedName, NSXServiceAccount], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event.

        Returns a callable that can be called to remove the listener.
        """
