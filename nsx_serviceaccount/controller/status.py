"""Translation of reconcile outcomes into the status of a resource."""

import copy
import logging

from nsx_serviceaccount.manifest import NSXServiceAccount, NSXServiceAccountStatus, Phase
from nsx_serviceaccount.store import Store

__all__ = [
    "ERROR_PREFIX",
    "build_status",
    "is_error_reason",
    "update_status",
]

_LOGGER = logging.getLogger(__name__)

ERROR_PREFIX = "Error: "


def build_status(
    status: NSXServiceAccountStatus, error: Exception | None = None
) -> NSXServiceAccountStatus:
    """Return the status to persist for an outcome.

    On error the phase becomes Failed and the reason carries the error
    message; every other field is kept as given.
    """
    result = copy.deepcopy(status)
    if error is not None:
        result.phase = Phase.FAILED
        result.reason = f"{ERROR_PREFIX}{error}"
    return result


def is_error_reason(reason: str) -> bool:
    """Return True if the reason was written for a failure."""
    return reason.startswith(ERROR_PREFIX)


async def update_status(
    store: Store,
    obj: NSXServiceAccount,
    status: NSXServiceAccountStatus | None = None,
    error: Exception | None = None,
) -> NSXServiceAccount:
    """Persist the status of the resource for an outcome.

    Args:
        store: The store holding the resource
        obj: The resource, at the resource version the update is based on
        status: The status fields to persist, defaults to the current status
        error: The error the outcome failed with, if any

    Returns:
        The resource as stored.

    Errors persisting the status are raised unmodified.
    """
    updated = copy.deepcopy(obj)
    updated.status = build_status(status if status is not None else obj.status, error)
    if error is not None:
        _LOGGER.warning(
            "NSXServiceAccount %s failed: %s", obj.namespaced_name, error
        )
    else:
        _LOGGER.debug(
            "Updating status of NSXServiceAccount %s to %s",
            obj.namespaced_name,
            updated.status.phase,
        )
    return await store.update_status(updated)
