"""Service managing the NSX records of NSXServiceAccount resources.

Each NSXServiceAccount owns two NSX records:
    - ClusterControlPlane: the trust anchor of the cluster control plane
    - PrincipalIdentity: the certificate based identity bound to that anchor

Both are named after the normalized cluster name and correlated with the
resource only through their tags. The service keeps a TagIndexedStore per
record type in sync with every mutation it performs.

Mutations of the records of one namespace/name are serialized, so the
garbage collector and a reconcile never both delete the same record.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import copy
import logging

from nsx_serviceaccount.config import OperatorConfig
from nsx_serviceaccount.manifest import (
    NamespacedName,
    NSXSecret,
    NSXServiceAccount,
    NSXServiceAccountStatus,
    Phase,
)

from .client import FEATURE_SERVICE_ACCOUNT, NSXClient
from .model import ClusterControlPlane, PrincipalIdentity
from .store import TagIndexedStore
from .tags import build_tags

__all__ = [
    "NSXServiceAccountService",
]

_LOGGER = logging.getLogger(__name__)

PRINCIPAL_IDENTITY_ROLE = "vpc_ha_admin"
SECRET_SUFFIX = "-nsx-cert"


class NSXServiceAccountService:
    """Facade over the NSX manager for NSXServiceAccount records."""

    def __init__(self, client: NSXClient, config: OperatorConfig) -> None:
        """Initialize the service.

        Args:
            client: Client for the NSX manager
            config: The operator configuration
        """
        self.client = client
        self.config = config
        self.principal_identity_store: TagIndexedStore[PrincipalIdentity] = (
            TagIndexedStore("PrincipalIdentity")
        )
        self.cluster_control_plane_store: TagIndexedStore[ClusterControlPlane] = (
            TagIndexedStore("ClusterControlPlane")
        )
        self._locks: dict[NamespacedName, asyncio.Lock] = {}

    @asynccontextmanager
    async def _resource_lock(self, namespaced_name: NamespacedName) -> AsyncIterator[None]:
        """Run while holding the lock for the records of the resource.

        This is not threadsafe and expected to be run in the asyncio loop.
        """
        if not (lock := self._locks.get(namespaced_name)):
            lock = asyncio.Lock()
            self._locks[namespaced_name] = lock
        async with lock:
            yield

    async def initialize_stores(self) -> None:
        """Load the records of this cluster from the NSX manager.

        Safe to call again at any time to resync the stores.
        """
        principal_identities = [
            pi
            for pi in await self.client.list_principal_identities()
            if self._owned(pi)
        ]
        cluster_control_planes = [
            ccp
            for ccp in await self.client.list_cluster_control_planes()
            if self._owned(ccp)
        ]
        self.principal_identity_store.replace_all(principal_identities)
        self.cluster_control_plane_store.replace_all(cluster_control_planes)
        _LOGGER.info(
            "Initialized stores with %d PrincipalIdentity and %d ClusterControlPlane records",
            len(principal_identities),
            len(cluster_control_planes),
        )

    def _owned(self, record: PrincipalIdentity | ClusterControlPlane) -> bool:
        return (
            record.cluster == self.config.cluster_name
            and record.correlation is not None
        )

    async def check_version_support(self) -> bool:
        """Return True if the NSX manager supports NSXServiceAccount."""
        return await self.client.check_version(FEATURE_SERVICE_ACCOUNT)

    def normalized_cluster_name(self, namespaced_name: NamespacedName) -> str:
        """Return the name of the remote records of a resource."""
        return (
            f"{self.config.cluster_name}-{namespaced_name.namespace}-"
            f"{namespaced_name.name}"
        )

    async def create_or_update(self, obj: NSXServiceAccount) -> NSXServiceAccountStatus:
        """Ensure both NSX records exist for the resource.

        Records left behind by an earlier resource with the same namespace
        and name are deleted first. Records already owned by the resource are
        reused, so calling this again for a realized resource makes no remote
        mutation.

        Returns:
            The realized status to record on the resource.
        """
        async with self._resource_lock(obj.namespaced_name):
            return await self._create_or_update(obj)

    async def _create_or_update(self, obj: NSXServiceAccount) -> NSXServiceAccountStatus:
        key = obj.namespaced_name
        stale_uids = {
            record.correlation.uid
            for record in [
                *self.principal_identity_store.get_by_namespaced_name(key),
                *self.cluster_control_plane_store.get_by_namespaced_name(key),
            ]
            if record.correlation is not None and record.correlation.uid != obj.uid
        }
        for uid in sorted(stale_uids):
            _LOGGER.info("Deleting stale NSX records of %s (uid %s)", key, uid)
            await self._delete(key, uid)

        cluster_name = self.normalized_cluster_name(key)
        tags = build_tags(self.config.cluster_name, obj)

        if ccps := self.cluster_control_plane_store.get_by_uid(obj.uid):
            cluster_control_plane = ccps[0]
        else:
            _LOGGER.info("Creating ClusterControlPlane %s for %s", cluster_name, key)
            cluster_control_plane = await self.client.create_cluster_control_plane(
                ClusterControlPlane(
                    id=cluster_name,
                    display_name=cluster_name,
                    tags=tags,
                )
            )
            self.cluster_control_plane_store.add(cluster_control_plane)

        if not self.principal_identity_store.get_by_uid(obj.uid):
            _LOGGER.info("Creating PrincipalIdentity %s for %s", cluster_name, key)
            principal_identity = await self.client.create_principal_identity(
                PrincipalIdentity(
                    name=cluster_name,
                    node_id=cluster_control_plane.node_id,
                    role=PRINCIPAL_IDENTITY_ROLE,
                    role_path=self.config.vpc_path,
                    tags=tags,
                )
            )
            self.principal_identity_store.add(principal_identity)

        return NSXServiceAccountStatus(
            phase=Phase.REALIZED,
            vpc_path=self.config.vpc_path,
            nsx_managers=list(self.config.nsx_managers),
            proxy_endpoints=copy.deepcopy(self.config.proxy_endpoints),
            cluster_id=cluster_control_plane.node_id or cluster_control_plane.id,
            cluster_name=cluster_name,
            secrets=[NSXSecret(name=f"{obj.name}{SECRET_SUFFIX}", namespace=obj.namespace)],
        )

    async def delete(self, namespaced_name: NamespacedName, uid: str | None = None) -> None:
        """Delete the NSX records tagged with the namespace and name.

        Args:
            namespaced_name: The owning resource
            uid: Only delete records of the resource with this uid

        A resource without records is considered deleted. The first failing
        remote call is raised; records deleted before it stay deleted.
        """
        async with self._resource_lock(namespaced_name):
            await self._delete(namespaced_name, uid)

    async def _delete(self, namespaced_name: NamespacedName, uid: str | None) -> None:
        principal_identities = [
            pi
            for pi in self.principal_identity_store.get_by_namespaced_name(namespaced_name)
            if uid is None or (pi.correlation and pi.correlation.uid == uid)
        ]
        cluster_control_planes = [
            ccp
            for ccp in self.cluster_control_plane_store.get_by_namespaced_name(
                namespaced_name
            )
            if uid is None or (ccp.correlation and ccp.correlation.uid == uid)
        ]
        if not principal_identities and not cluster_control_planes:
            _LOGGER.debug("No NSX records found for %s", namespaced_name)
            return

        for principal_identity in principal_identities:
            _LOGGER.info("Deleting PrincipalIdentity %s", principal_identity.name)
            await self.client.delete_principal_identity(principal_identity.name)
            self.principal_identity_store.discard(principal_identity.key)

        for cluster_control_plane in cluster_control_planes:
            _LOGGER.info("Deleting ClusterControlPlane %s", cluster_control_plane.id)
            await self.client.delete_cluster_control_plane(cluster_control_plane.id)
            self.cluster_control_plane_store.discard(cluster_control_plane.key)
