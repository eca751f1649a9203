"""NSXServiceAccount controller.

This controller keeps each NSXServiceAccount resource in sync with the
NSX records it owns, and garbage collects records whose resource is gone.

Key Concepts:
    - Reconciler: drives a single resource key through finalizer, create
      and delete handling
    - Status: translation of an outcome into the resource status
    - GarbageCollector: periodic sweep deleting orphaned NSX records
    - ControllerManager: delivers store changes to the reconciler and
      retries keys according to the returned Result

Integration Points:
    - nsx_serviceaccount.store.Store: declarative state of the resources
    - nsx_serviceaccount.nsx.NSXServiceAccountService: NSX records
"""

from nsx_serviceaccount.result import (
    Result,
    RESULT_NORMAL,
    RESULT_REQUEUE,
    RESULT_REQUEUE_AFTER_5MINS,
)

from .garbage_collector import GarbageCollector, GCStats
from .manager import ControllerManager
from .reconciler import NSXServiceAccountReconciler
from .status import build_status, update_status

__all__ = [
    "ControllerManager",
    "GarbageCollector",
    "GCStats",
    "NSXServiceAccountReconciler",
    "Result",
    "RESULT_NORMAL",
    "RESULT_REQUEUE",
    "RESULT_REQUEUE_AFTER_5MINS",
    "build_status",
    "update_status",
]
