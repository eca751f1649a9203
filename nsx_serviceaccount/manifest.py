"""Representation of NSXServiceAccount resources.

An NSXServiceAccount is a namespaced custom resource that asks the NSX
manager for a principal identity (certificate based authentication) and a
cluster control plane record. The desired shape is empty; everything the
controller learns is written to the status sub-object.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "API_GROUP",
    "API_VERSION",
    "NSX_SERVICE_ACCOUNT_KIND",
    "FINALIZER_NAME",
    "NamespacedName",
    "Phase",
    "NSXSecret",
    "NSXProxyEndpoint",
    "NSXServiceAccountSpec",
    "NSXServiceAccountStatus",
    "NSXServiceAccount",
]


API_GROUP = "nsx.vmware.com"
API_VERSION = f"{API_GROUP}/v1alpha1"
NSX_SERVICE_ACCOUNT_KIND = "NSXServiceAccount"
FINALIZER_NAME = "nsxserviceaccount.nsx.vmware.com/finalizer"


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamespacedName:
    """Identifier for a namespaced kubernetes resource."""

    namespace: str
    name: str

    def __str__(self) -> str:
        """Return the namespace and name joined as an id."""
        return f"{self.namespace}/{self.name}"


class Phase(StrEnum):
    """Lifecycle state recorded in the status of a resource."""

    REALIZED = "realized"
    IN_PROGRESS = "inProgress"
    FAILED = "failed"


@dataclass
class NSXSecret(BaseManifest):
    """Reference to a Secret holding client credentials."""

    name: str
    namespace: str


@dataclass
class NSXProxyEndpointAddress(BaseManifest):
    """An address of the NSX proxy."""

    hostname: str = ""
    ip: str = ""


@dataclass
class NSXProxyEndpointPort(BaseManifest):
    """A port of the NSX proxy."""

    name: str = ""
    port: int = 0
    protocol: str = "TCP"


@dataclass
class NSXProxyEndpoint(BaseManifest):
    """Endpoints clients use to reach the NSX manager through a proxy."""

    addresses: list[NSXProxyEndpointAddress] = field(default_factory=list)
    ports: list[NSXProxyEndpointPort] = field(default_factory=list)


@dataclass
class NSXServiceAccountSpec(BaseManifest):
    """Desired state of an NSXServiceAccount, currently empty."""


@dataclass
class NSXServiceAccountStatus(BaseManifest):
    """Observed state of an NSXServiceAccount."""

    phase: Phase | None = None
    """The lifecycle phase, unset until the first reconcile."""

    reason: str = ""
    """Free form description of the phase, prefixed with 'Error: ' on failure."""

    vpc_path: str = field(metadata=field_options(alias="vpcPath"), default="")
    """The NSX VPC the principal identity is scoped to."""

    nsx_managers: list[str] = field(
        metadata=field_options(alias="nsxManagers"), default_factory=list
    )
    """NSX manager addresses as host:port."""

    proxy_endpoints: NSXProxyEndpoint = field(
        metadata=field_options(alias="proxyEndpoints"),
        default_factory=NSXProxyEndpoint,
    )

    cluster_id: str = field(metadata=field_options(alias="clusterID"), default="")
    """The id of the cluster control plane record."""

    cluster_name: str = field(metadata=field_options(alias="clusterName"), default="")
    """The normalized cluster name used for both remote records."""

    secrets: list[NSXSecret] = field(default_factory=list)
    """Secrets holding the client certificate and key."""


@dataclass
class NSXServiceAccount(BaseManifest):
    """An NSXServiceAccount custom resource."""

    namespace: str
    name: str
    uid: str = ""
    resource_version: str = field(
        metadata=field_options(alias="resourceVersion"), default=""
    )
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: str | None = field(
        metadata=field_options(alias="deletionTimestamp"), default=None
    )
    spec: NSXServiceAccountSpec = field(default_factory=NSXServiceAccountSpec)
    status: NSXServiceAccountStatus = field(default_factory=NSXServiceAccountStatus)

    kind: ClassVar[str] = NSX_SERVICE_ACCOUNT_KIND

    @property
    def namespaced_name(self) -> NamespacedName:
        """Return the key of the resource."""
        return NamespacedName(self.namespace, self.name)

    @property
    def is_deleting(self) -> bool:
        """Return True if a deletion was requested for the resource."""
        return self.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str = FINALIZER_NAME) -> bool:
        """Return True if the resource carries the finalizer."""
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer: str = FINALIZER_NAME) -> None:
        """Add the finalizer if not already present."""
        if finalizer not in self.finalizers:
            self.finalizers.append(finalizer)

    def remove_finalizer(self, finalizer: str = FINALIZER_NAME) -> None:
        """Remove the finalizer if present."""
        if finalizer in self.finalizers:
            self.finalizers.remove(finalizer)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "NSXServiceAccount":
        """Parse an NSXServiceAccount from a raw kubernetes object."""
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if not api_version.startswith(API_GROUP):
            raise InputException(f"Invalid object expected '{API_GROUP}': {doc}")
        if doc.get("kind") != NSX_SERVICE_ACCOUNT_KIND:
            raise InputException(
                f"Invalid object expected kind '{NSX_SERVICE_ACCOUNT_KIND}': {doc}"
            )
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid object missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        if not (namespace := metadata.get("namespace")):
            raise InputException(f"Invalid object missing metadata.namespace: {doc}")
        return cls(
            namespace=namespace,
            name=name,
            uid=metadata.get("uid", ""),
            resource_version=metadata.get("resourceVersion", ""),
            finalizers=list(metadata.get("finalizers") or []),
            deletion_timestamp=metadata.get("deletionTimestamp"),
            spec=NSXServiceAccountSpec.from_dict(doc.get("spec") or {}),
            status=NSXServiceAccountStatus.from_dict(doc.get("status") or {}),
        )

    def to_doc(self) -> dict[str, Any]:
        """Return the object as a raw kubernetes object."""
        metadata: dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
        }
        if self.uid:
            metadata["uid"] = self.uid
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        if self.finalizers:
            metadata["finalizers"] = list(self.finalizers)
        if self.deletion_timestamp is not None:
            metadata["deletionTimestamp"] = self.deletion_timestamp
        return {
            "apiVersion": API_VERSION,
            "kind": NSX_SERVICE_ACCOUNT_KIND,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }
