"""Exceptions related to nsx-serviceaccount."""

from typing import TYPE_CHECKING

from .result import Result, RESULT_REQUEUE

if TYPE_CHECKING:
    from .manifest import NamespacedName

__all__ = [
    "NSXServiceAccountException",
    "InputException",
    "ObjectNotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "DuplicateKeyError",
    "NSXException",
    "VersionCheckError",
    "ServiceNotConfiguredError",
    "ReconcileError",
]


class NSXServiceAccountException(Exception):
    """Generic base exception used for this library."""


class InputException(NSXServiceAccountException):
    """Raised when a resource document is not formatted as expected."""


class ObjectNotFoundError(NSXServiceAccountException):
    """Raised when an object is not found in the store."""


class AlreadyExistsError(NSXServiceAccountException):
    """Raised when creating an object that already exists in the store."""


class ConflictError(NSXServiceAccountException):
    """Raised when an update was made against a stale resource version."""


class DuplicateKeyError(NSXServiceAccountException):
    """Raised when adding a remote record whose primary key is already cached."""


class NSXException(NSXServiceAccountException):
    """Raised when a call to the NSX manager fails."""


class VersionCheckError(NSXException):
    """Raised when the NSX manager does not support the feature."""


class ServiceNotConfiguredError(NSXServiceAccountException):
    """Raised when a controller is started without an NSX service."""


class ReconcileError(NSXServiceAccountException):
    """Raised when a reconcile failed and the key must be retried with backoff."""

    def __init__(self, key: "NamespacedName", cause: Exception) -> None:
        super().__init__(f"Failed to reconcile {key}: {cause}")
        self.key = key
        self.cause = cause

    @property
    def result(self) -> Result:
        """The result the dispatcher should apply for this failure."""
        return RESULT_REQUEUE
