"""In memory cache of NSX records indexed by correlation tags.

The NSX manager is authoritative; a TagIndexedStore only mirrors what the
service has listed or mutated so that lookups by owning resource do not need
a remote call. One generic implementation serves every record type since
their correlation behavior is identical.
"""

from collections import defaultdict
from collections.abc import Iterable
import logging
import threading
from typing import Generic, TypeVar

from nsx_serviceaccount.exceptions import DuplicateKeyError, ObjectNotFoundError
from nsx_serviceaccount.manifest import NamespacedName

from .model import RemoteRecord
from .tags import CorrelationKey, correlation_key

__all__ = [
    "TagIndexedStore",
    "correlation_uids",
]

_LOGGER = logging.getLogger(__name__)

R = TypeVar("R", bound=RemoteRecord)


def correlation_uids(records: Iterable[RemoteRecord]) -> set[str]:
    """Return the owner uids encoded in the tags of the records."""
    uids: set[str] = set()
    for record in records:
        if (key := correlation_key(record.tags)) is not None:
            uids.add(key.uid)
    return uids


class TagIndexedStore(Generic[R]):
    """Thread safe cache of records keyed by their primary identifier.

    Records are secondarily indexed by the namespace, name and uid encoded in
    their tags. Records without a complete set of correlation tags are kept
    but are not reachable through the secondary indexes.
    """

    def __init__(self, name: str) -> None:
        """Initialize an empty store.

        Args:
            name: Record type name used in log and error messages.
        """
        self._name = name
        self._lock = threading.RLock()
        self._records: dict[str, R] = {}
        self._by_owner: defaultdict[NamespacedName, set[str]] = defaultdict(set)
        self._by_uid: defaultdict[str, set[str]] = defaultdict(set)

    @property
    def name(self) -> str:
        return self._name

    def add(self, record: R) -> None:
        """Add a record, rejecting a primary key that is already cached."""
        with self._lock:
            if record.key in self._records:
                raise DuplicateKeyError(
                    f"{self._name} {record.key} already exists in store"
                )
            self._records[record.key] = record
            if (owner := correlation_key(record.tags)) is not None:
                self._index(record.key, owner)
        _LOGGER.debug("Added %s %s to store", self._name, record.key)

    def delete(self, key: str) -> R:
        """Remove and return the record with the primary key."""
        with self._lock:
            if (record := self._records.pop(key, None)) is None:
                raise ObjectNotFoundError(f"{self._name} {key} not found in store")
            if (owner := correlation_key(record.tags)) is not None:
                self._unindex(key, owner)
        _LOGGER.debug("Deleted %s %s from store", self._name, key)
        return record

    def discard(self, key: str) -> R | None:
        """Remove the record with the primary key if cached."""
        with self._lock:
            if key not in self._records:
                return None
            return self.delete(key)

    def replace_all(self, records: Iterable[R]) -> None:
        """Replace the contents of the store with the records."""
        loaded: dict[str, R] = {}
        for record in records:
            if record.key in loaded:
                raise DuplicateKeyError(
                    f"{self._name} {record.key} listed more than once"
                )
            loaded[record.key] = record
        with self._lock:
            self._records = loaded
            self._by_owner.clear()
            self._by_uid.clear()
            for key, record in loaded.items():
                if (owner := correlation_key(record.tags)) is not None:
                    self._index(key, owner)
        _LOGGER.debug("Loaded %d %s records into store", len(loaded), self._name)

    def get(self, key: str) -> R | None:
        """Return the record with the primary key, if cached."""
        with self._lock:
            return self._records.get(key)

    def list_records(self) -> list[R]:
        """Return a point in time snapshot of all records."""
        with self._lock:
            return list(self._records.values())

    def get_by_namespaced_name(self, namespaced_name: NamespacedName) -> list[R]:
        """Return the records tagged with the namespace and name."""
        with self._lock:
            keys = sorted(self._by_owner.get(namespaced_name, ()))
            return [self._records[key] for key in keys]

    def get_by_uid(self, uid: str) -> list[R]:
        """Return the records tagged with the uid."""
        with self._lock:
            keys = sorted(self._by_uid.get(uid, ()))
            return [self._records[key] for key in keys]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _index(self, key: str, owner: CorrelationKey) -> None:
        self._by_owner[owner.namespaced_name].add(key)
        self._by_uid[owner.uid].add(key)

    def _unindex(self, key: str, owner: CorrelationKey) -> None:
        owner_keys = self._by_owner[owner.namespaced_name]
        owner_keys.discard(key)
        if not owner_keys:
            del self._by_owner[owner.namespaced_name]
        uid_keys = self._by_uid[owner.uid]
        uid_keys.discard(key)
        if not uid_keys:
            del self._by_uid[owner.uid]
