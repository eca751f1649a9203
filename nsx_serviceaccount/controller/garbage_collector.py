"""Garbage collection of orphaned NSX records.

A record is an orphan when the uid in its tags matches no NSXServiceAccount
in the store. Orphans are detected by uid and never by name, so a resource
deleted and recreated under the same name still has the records of its
predecessor collected while its own records are created by the reconciler.

A pass races with in-flight reconciles without extra locking: a resource
being created has no record to collect yet, and a resource being deleted
still exists in the store until its own delete path removed its records.
"""

import asyncio
from dataclasses import dataclass
import logging

from nsx_serviceaccount.context import trace_context
from nsx_serviceaccount.manifest import NSXServiceAccount
from nsx_serviceaccount.nsx import NSXServiceAccountService, correlation_uids
from nsx_serviceaccount.nsx.tags import CorrelationKey, correlation_key
from nsx_serviceaccount.store import Store

__all__ = [
    "GarbageCollector",
    "GCStats",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class GCStats:
    """Outcome of a single garbage collection pass."""

    success_count: int = 0
    error_count: int = 0


class GarbageCollector:
    """Deletes NSX records whose owning resource no longer exists."""

    def __init__(self, store: Store, service: NSXServiceAccountService) -> None:
        self._store = store
        self._service = service

    async def run(self, cancel: asyncio.Event, period: float) -> None:
        """Run a collection pass every period seconds until cancelled.

        Setting cancel wakes the loop immediately; a last pass is run before
        returning.
        """
        _LOGGER.info("Starting garbage collector every %ss", period)
        while True:
            try:
                await asyncio.wait_for(cancel.wait(), timeout=period)
            except asyncio.TimeoutError:
                pass
            await self.collect_once()
            if cancel.is_set():
                _LOGGER.info("Garbage collector stopped")
                return

    async def collect_once(self) -> GCStats | None:
        """Run one collection pass against the resources in the store.

        Returns None if the resources could not be listed; the next pass
        retries.
        """
        with trace_context("Garbage collection"):
            try:
                objs = await self._store.list_objects()
            except Exception as err:
                _LOGGER.error("Failed to list NSXServiceAccounts: %s", err)
                return None
            stats = await self.collect(objs)
        if stats.success_count or stats.error_count:
            _LOGGER.info(
                "Garbage collection deleted %d orphans, %d failed",
                stats.success_count,
                stats.error_count,
            )
        return stats

    async def collect(self, objs: list[NSXServiceAccount]) -> GCStats:
        """Delete the NSX records owned by none of the resources.

        Each orphaned uid gets one delete attempt per pass. A failed delete
        is counted and left for the next pass.
        """
        local_uids = {obj.uid for obj in objs}
        attempted: set[str] = set()
        stats = GCStats()
        for store in (
            self._service.principal_identity_store,
            self._service.cluster_control_plane_store,
        ):
            snapshot = store.list_records()
            owners: dict[str, CorrelationKey] = {}
            for record in snapshot:
                if (owner := correlation_key(record.tags)) is not None:
                    owners[owner.uid] = owner
            for uid in sorted(correlation_uids(snapshot) - local_uids - attempted):
                attempted.add(uid)
                owner = owners[uid]
                _LOGGER.info(
                    "Deleting orphaned %s records of %s (uid %s)",
                    store.name,
                    owner.namespaced_name,
                    uid,
                )
                try:
                    await self._service.delete(owner.namespaced_name, uid=uid)
                except Exception as err:
                    _LOGGER.error(
                        "Failed to delete orphaned NSX records of %s: %s",
                        owner.namespaced_name,
                        err,
                    )
                    stats.error_count += 1
                else:
                    stats.success_count += 1
        return stats
