"""NSXServiceAccount reconciler.

The reconciler drives a single resource key towards its desired state:

    - A finalizer is attached before any NSX record is created, so that
      deleting the resource always gives the controller a chance to clean up.
    - While the resource exists its NSX records are created, and the outcome
      is written to the resource status.
    - Once deletion is requested the NSX records are deleted and only then
      is the finalizer removed.

Every store update is a compare-and-swap. A lost race raises like any other
error and the whole reconcile is retried; partial state is never merged.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from nsx_serviceaccount.config import OperatorConfig
from nsx_serviceaccount.context import trace_context
from nsx_serviceaccount.exceptions import (
    ReconcileError,
    ServiceNotConfiguredError,
    VersionCheckError,
)
from nsx_serviceaccount.manifest import NamespacedName, NSXServiceAccount, Phase
from nsx_serviceaccount.nsx import NSXServiceAccountService
from nsx_serviceaccount.result import Result, RESULT_NORMAL
from nsx_serviceaccount.store import Store

from .garbage_collector import GarbageCollector
from .status import update_status

if TYPE_CHECKING:
    from .manager import ControllerManager

__all__ = [
    "NSXServiceAccountReconciler",
    "VERSION_CHECK_FAILED_MESSAGE",
]

_LOGGER = logging.getLogger(__name__)

VERSION_CHECK_FAILED_MESSAGE = (
    "NSX version check failed, NSXServiceAccount feature is not supported"
)


class NSXServiceAccountReconciler:
    """Reconciles NSXServiceAccount resources with their NSX records."""

    def __init__(
        self,
        store: Store,
        service: NSXServiceAccountService | None,
        config: OperatorConfig,
    ) -> None:
        """
        Initialize the reconciler.

        Args:
            store: The store holding NSXServiceAccount resources
            service: The service managing NSX records
            config: The operator configuration
        """
        self._store = store
        self._service = service
        self._config = config

    @property
    def service(self) -> NSXServiceAccountService:
        """The NSX service, which must be configured before reconciling."""
        if self._service is None:
            raise ServiceNotConfiguredError("NSXServiceAccount service is not configured")
        return self._service

    async def start(self, manager: "ControllerManager") -> None:
        """Register the reconciler and garbage collector with the manager.

        Raises:
            ServiceNotConfiguredError: If no NSX service was provided.
        """
        service = self.service
        await service.initialize_stores()
        manager.watch(self.reconcile)
        manager.run_background(
            lambda cancel: self.garbage_collector(
                cancel, self._config.gc_interval_seconds
            ),
            name="nsxserviceaccount-garbage-collector",
        )
        _LOGGER.info("Started NSXServiceAccount controller")

    async def reconcile(self, key: NamespacedName) -> Result:
        """Reconcile the resource with the key.

        Returns:
            The result telling the dispatcher when to reconcile the key again.

        Raises:
            ReconcileError: If the key must be retried with backoff.
        """
        with trace_context(f"Reconcile {key}"):
            try:
                obj = await self._store.get_object(key)
            except Exception as err:
                raise ReconcileError(key, err) from err
            if obj is None:
                _LOGGER.info("NSXServiceAccount %s not found, already deleted", key)
                return RESULT_NORMAL

            try:
                supported = await self.service.check_version_support()
            except Exception as err:
                raise ReconcileError(key, err) from err
            if not supported:
                _LOGGER.warning(
                    "NSX version check failed for %s, retrying in %s",
                    key,
                    self._config.version_check_requeue,
                )
                try:
                    await update_status(
                        self._store,
                        obj,
                        error=VersionCheckError(VERSION_CHECK_FAILED_MESSAGE),
                    )
                except Exception as err:
                    raise ReconcileError(key, err) from err
                return Result.after(self._config.version_check_requeue)

            if obj.is_deleting:
                return await self._reconcile_delete(obj)
            return await self._reconcile_create(obj)

    async def _reconcile_create(self, obj: NSXServiceAccount) -> Result:
        key = obj.namespaced_name
        if not obj.has_finalizer():
            obj.add_finalizer()
            try:
                obj = await self._store.update_object(obj)
            except Exception as err:
                raise ReconcileError(key, err) from err
            _LOGGER.debug("Added finalizer to NSXServiceAccount %s", key)

        if obj.status.phase == Phase.REALIZED:
            _LOGGER.debug("NSXServiceAccount %s already realized", key)
            return RESULT_NORMAL

        _LOGGER.info("Creating NSX records for NSXServiceAccount %s", key)
        try:
            status = await self.service.create_or_update(obj)
        except Exception as err:
            await self._report_failure(obj, err)
            raise ReconcileError(key, err) from err
        try:
            await update_status(self._store, obj, status)
        except Exception as err:
            raise ReconcileError(key, err) from err
        _LOGGER.info("NSXServiceAccount %s realized", key)
        return RESULT_NORMAL

    async def _reconcile_delete(self, obj: NSXServiceAccount) -> Result:
        key = obj.namespaced_name
        if not obj.has_finalizer():
            _LOGGER.debug("NSXServiceAccount %s has no finalizer, nothing to clean", key)
            return RESULT_NORMAL

        _LOGGER.info("Deleting NSX records for NSXServiceAccount %s", key)
        try:
            await self.service.delete(key)
        except Exception as err:
            await self._report_failure(obj, err)
            raise ReconcileError(key, err) from err

        obj.remove_finalizer()
        try:
            await self._store.update_object(obj)
        except Exception as err:
            raise ReconcileError(key, err) from err
        _LOGGER.info("Removed finalizer from NSXServiceAccount %s", key)
        return RESULT_NORMAL

    async def _report_failure(self, obj: NSXServiceAccount, error: Exception) -> None:
        """Record a failed remote call on the resource status."""
        try:
            await update_status(self._store, obj, error=error)
        except Exception as err:
            _LOGGER.error(
                "Failed to update status of NSXServiceAccount %s: %s",
                obj.namespaced_name,
                err,
            )

    async def garbage_collector(self, cancel: asyncio.Event, period: float) -> None:
        """Periodically delete NSX records whose resource no longer exists.

        Runs until cancel is set, see GarbageCollector.run.
        """
        await GarbageCollector(self._store, self.service).run(cancel, period)
