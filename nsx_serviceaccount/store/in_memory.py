"""Module for in memory object store."""

import copy
import datetime
from collections import defaultdict
from collections.abc import Callable
from typing import Any, DefaultDict

import logging

from nsx_serviceaccount.manifest import NamespacedName, NSXServiceAccount
from nsx_serviceaccount.exceptions import (
    AlreadyExistsError,
    ConflictError,
    ObjectNotFoundError,
)

from .store import Store, StoreEvent


_LOGGER = logging.getLogger(__name__)


def _now() -> str:
    return datetime.datetime.now(datetime.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Objects are keyed by NamespacedName and versioned with a per object
    counter, in the same way an API server assigns resource versions.
    Supports event listeners for object added, updated and deleted, and for
    status updates which are reported separately from object updates.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[NamespacedName, NSXServiceAccount] = {}
        self._listeners: DefaultDict[
            StoreEvent, list[Callable[[NamespacedName, NSXServiceAccount], None]]
        ] = defaultdict(list)

    async def get_object(self, key: NamespacedName) -> NSXServiceAccount | None:
        """Retrieve an object by key, or None when it does not exist."""
        if (obj := self._objects.get(key)) is None:
            return None
        return copy.deepcopy(obj)

    async def list_objects(self) -> list[NSXServiceAccount]:
        """List all objects in the store."""
        return [copy.deepcopy(obj) for obj in self._objects.values()]

    async def create_object(self, obj: NSXServiceAccount) -> NSXServiceAccount:
        """Add a new object to the store."""
        key = obj.namespaced_name
        if key in self._objects:
            raise AlreadyExistsError(f"Object {key} already exists")
        stored = copy.deepcopy(obj)
        stored.resource_version = "1"
        _LOGGER.debug("Adding object %s to store", key)
        self._objects[key] = stored
        self._fire_event(StoreEvent.OBJECT_ADDED, key, copy.deepcopy(stored))
        return copy.deepcopy(stored)

    async def update_object(self, obj: NSXServiceAccount) -> NSXServiceAccount:
        """Persist the metadata and spec of an object."""
        current = self._check_version(obj)
        stored = copy.deepcopy(obj)
        stored.status = copy.deepcopy(current.status)
        if stored.deletion_timestamp is None:
            stored.deletion_timestamp = current.deletion_timestamp
        return self._commit(current, stored, StoreEvent.OBJECT_UPDATED)

    async def update_status(self, obj: NSXServiceAccount) -> NSXServiceAccount:
        """Persist only the status of an object."""
        current = self._check_version(obj)
        stored = copy.deepcopy(current)
        stored.status = copy.deepcopy(obj.status)
        return self._commit(current, stored, StoreEvent.STATUS_UPDATED)

    async def delete_object(self, key: NamespacedName) -> None:
        """Request deletion of an object."""
        if (current := self._objects.get(key)) is None:
            raise ObjectNotFoundError(f"Object {key} not found")
        if not current.finalizers:
            self._remove(key)
            return
        if current.deletion_timestamp is not None:
            return
        stored = copy.deepcopy(current)
        stored.deletion_timestamp = _now()
        self._commit(current, stored, StoreEvent.OBJECT_UPDATED)

    def _check_version(self, obj: NSXServiceAccount) -> NSXServiceAccount:
        key = obj.namespaced_name
        if (current := self._objects.get(key)) is None:
            raise ObjectNotFoundError(f"Object {key} not found")
        if obj.resource_version != current.resource_version:
            raise ConflictError(
                f"Object {key} has been modified; resource version "
                f"{obj.resource_version} != {current.resource_version}"
            )
        return current

    def _commit(
        self,
        current: NSXServiceAccount,
        stored: NSXServiceAccount,
        event: StoreEvent,
    ) -> NSXServiceAccount:
        key = stored.namespaced_name
        stored.resource_version = str(int(current.resource_version) + 1)
        if stored.deletion_timestamp is not None and not stored.finalizers:
            self._remove(key)
            return copy.deepcopy(stored)
        _LOGGER.debug(
            "Updating object %s in store (resource version %s)",
            key,
            stored.resource_version,
        )
        self._objects[key] = stored
        self._fire_event(event, key, copy.deepcopy(stored))
        return copy.deepcopy(stored)

    def _remove(self, key: NamespacedName) -> None:
        _LOGGER.debug("Removing object %s from store", key)
        obj = self._objects.pop(key)
        self._fire_event(StoreEvent.OBJECT_DELETED, key, obj)

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamespacedName, NSXServiceAccount], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)

        if flush and event == StoreEvent.OBJECT_ADDED:
            _LOGGER.debug("Flushing objects for event type %s", event)
            for key, obj in list(self._objects.items()):
                callback(key, copy.deepcopy(obj))

        return remove

    def _fire_event(self, event: StoreEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):  # Iterate over a copy for safe removal
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)
