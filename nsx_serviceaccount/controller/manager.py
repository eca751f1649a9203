"""Controller manager dispatching resource keys to a reconciler.

The manager watches the store and delivers keys to the registered reconcile
function with these guarantees:

    - At most one reconcile runs per key at a time. A change arriving for a
      key being reconciled marks it dirty and it is reconciled once more.
    - Reconciles of distinct keys run concurrently, up to a configured limit.
    - Results are honored: Requeue (or a ReconcileError) retries the key with
      exponential backoff, RequeueAfter retries it after the given delay.

Background tasks such as the garbage collector share a cancellation event
that is set when the manager is closed.
"""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
import logging
from typing import Any

from nsx_serviceaccount.config import OperatorConfig
from nsx_serviceaccount.exceptions import ReconcileError
from nsx_serviceaccount.manifest import NamespacedName, NSXServiceAccount
from nsx_serviceaccount.result import Result, RESULT_REQUEUE
from nsx_serviceaccount.store import Store, StoreEvent
from nsx_serviceaccount.task import TaskService, TaskServiceImpl

__all__ = [
    "ControllerManager",
    "ReconcileFunc",
]

_LOGGER = logging.getLogger(__name__)

ReconcileFunc = Callable[[NamespacedName], Awaitable[Result]]

# Time given to background tasks to observe cancellation before they are
# cancelled outright.
SHUTDOWN_GRACE_SECONDS = 10.0


class ControllerManager:
    """Delivers store changes to a reconciler and retries failed keys."""

    def __init__(
        self,
        store: Store,
        task_service: TaskService | None = None,
        max_concurrent_reconciles: int = 4,
        backoff_base_seconds: float = 0.5,
        backoff_max_seconds: float = 300,
    ) -> None:
        """Initialize the manager.

        Args:
            store: The store to watch for changes
            task_service: Tracks reconcile and background tasks
            max_concurrent_reconciles: Limit of reconciles running at once
            backoff_base_seconds: First retry delay of a failing key
            backoff_max_seconds: Upper bound of the retry delay
        """
        self._store = store
        self._task_service = task_service or TaskServiceImpl()
        self._semaphore = asyncio.Semaphore(max_concurrent_reconciles)
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._reconcile: ReconcileFunc | None = None
        self._cancel = asyncio.Event()
        self._pending: set[NamespacedName] = set()
        self._in_flight: set[NamespacedName] = set()
        self._dirty: set[NamespacedName] = set()
        self._failures: dict[NamespacedName, int] = {}
        self._timers: dict[NamespacedName, asyncio.TimerHandle] = {}
        self._background: list[asyncio.Task[Any]] = []
        self._remove_listeners: list[Callable[[], None]] = []

    @classmethod
    def from_config(
        cls, store: Store, config: OperatorConfig, task_service: TaskService | None = None
    ) -> "ControllerManager":
        """Create a manager with the limits of the operator configuration."""
        return cls(
            store,
            task_service=task_service,
            max_concurrent_reconciles=config.max_concurrent_reconciles,
            backoff_base_seconds=config.backoff_base_seconds,
            backoff_max_seconds=config.backoff_max_seconds,
        )

    @property
    def cancel_event(self) -> asyncio.Event:
        """Event set when the manager is closed."""
        return self._cancel

    def watch(self, reconcile: ReconcileFunc) -> None:
        """Deliver every added or updated object to the reconcile function.

        Objects already in the store are delivered immediately.
        """
        if self._reconcile is not None:
            raise ValueError("A reconciler is already registered")
        self._reconcile = reconcile

        def on_change(key: NamespacedName, obj: NSXServiceAccount) -> None:
            self.enqueue(key)

        def on_deleted(key: NamespacedName, obj: NSXServiceAccount) -> None:
            self._forget(key)

        self._remove_listeners.extend(
            [
                self._store.add_listener(StoreEvent.OBJECT_ADDED, on_change, flush=True),
                self._store.add_listener(StoreEvent.OBJECT_UPDATED, on_change),
                self._store.add_listener(StoreEvent.OBJECT_DELETED, on_deleted),
            ]
        )

    def run_background(
        self,
        factory: Callable[[asyncio.Event], Coroutine[None, None, Any]],
        name: str | None = None,
    ) -> asyncio.Task[Any]:
        """Run a long lived coroutine that stops once the cancel event is set."""
        task = self._task_service.create_background_task(factory(self._cancel), name=name)
        self._background.append(task)
        return task

    def enqueue(self, key: NamespacedName, delay: float = 0) -> None:
        """Schedule a reconcile of the key, after delay seconds if given."""
        if self._cancel.is_set():
            return
        if delay > 0:
            if (timer := self._timers.pop(key, None)) is not None:
                timer.cancel()
            loop = asyncio.get_running_loop()
            self._timers[key] = loop.call_later(delay, self._fire_timer, key)
            return
        if key in self._in_flight:
            self._dirty.add(key)
            return
        if key in self._pending:
            return
        self._pending.add(key)
        self._task_service.create_task(self._process(key), name=f"reconcile {key}")

    def _fire_timer(self, key: NamespacedName) -> None:
        self._timers.pop(key, None)
        self.enqueue(key)

    def _forget(self, key: NamespacedName) -> None:
        self._failures.pop(key, None)
        if (timer := self._timers.pop(key, None)) is not None:
            timer.cancel()

    async def _process(self, key: NamespacedName) -> None:
        if self._reconcile is None:
            raise ValueError("No reconciler registered")
        async with self._semaphore:
            self._pending.discard(key)
            self._in_flight.add(key)
            try:
                result = await self._reconcile(key)
            except ReconcileError as err:
                _LOGGER.warning("%s", err)
                result = err.result
            except Exception:
                _LOGGER.exception("Unexpected error reconciling %s", key)
                result = RESULT_REQUEUE
            finally:
                self._in_flight.discard(key)
        self._handle_result(key, result)
        if key in self._dirty:
            self._dirty.discard(key)
            self.enqueue(key)

    def _handle_result(self, key: NamespacedName, result: Result) -> None:
        if result.requeue_after is not None:
            self._failures.pop(key, None)
            self.enqueue(key, delay=result.requeue_after.total_seconds())
        elif result.requeue:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
            self.enqueue(key, delay=self.backoff_delay(failures))
        else:
            self._failures.pop(key, None)

    def backoff_delay(self, failures: int) -> float:
        """Return the retry delay after the given number of failures."""
        return float(min(self._backoff_base * (2**failures), self._backoff_max))

    async def wait_idle(self) -> None:
        """Wait until no reconcile is queued or running."""
        await self._task_service.block_till_done()

    async def close(self) -> None:
        """Stop dispatching and wait for the background tasks to stop."""
        _LOGGER.info("Stopping controller manager")
        self._cancel.set()
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners.clear()
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        if self._background:
            await asyncio.wait(self._background, timeout=SHUTDOWN_GRACE_SECONDS)
        await self._task_service.close()
        _LOGGER.info("Controller manager stopped")
