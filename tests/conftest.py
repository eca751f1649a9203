"""Test fixtures for nsx-serviceaccount."""

import dataclasses
from typing import Any

import pytest

from nsx_serviceaccount.config import OperatorConfig
from nsx_serviceaccount.controller import NSXServiceAccountReconciler
from nsx_serviceaccount.exceptions import NSXException
from nsx_serviceaccount.manifest import NSXServiceAccount
from nsx_serviceaccount.nsx import (
    ClusterControlPlane,
    NSXClient,
    NSXServiceAccountService,
    PrincipalIdentity,
    Tag,
)
from nsx_serviceaccount.nsx.tags import (
    TAG_SCOPE_CLUSTER,
    TAG_SCOPE_NAMESPACE,
    TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_NAME,
    TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_UID,
)
from nsx_serviceaccount.store import InMemoryStore

CLUSTER_NAME = "cl1"
UID1 = "00000000-0000-0000-0000-000000000001"
UID2 = "00000000-0000-0000-0000-000000000002"
UID3 = "00000000-0000-0000-0000-000000000003"
UID4 = "00000000-0000-0000-0000-000000000004"


def make_tags(
    namespace: str, name: str, uid: str, cluster: str = CLUSTER_NAME
) -> list[Tag]:
    """Create the tags of a record owned by the resource."""
    return [
        Tag(scope=TAG_SCOPE_CLUSTER, tag=cluster),
        Tag(scope=TAG_SCOPE_NAMESPACE, tag=namespace),
        Tag(scope=TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_NAME, tag=name),
        Tag(scope=TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_UID, tag=uid),
    ]


def make_principal_identity(
    namespace: str, name: str, uid: str, cluster: str = CLUSTER_NAME
) -> PrincipalIdentity:
    return PrincipalIdentity(
        name=f"{cluster}-{namespace}-{name}",
        tags=make_tags(namespace, name, uid, cluster),
    )


def make_cluster_control_plane(
    namespace: str, name: str, uid: str, cluster: str = CLUSTER_NAME
) -> ClusterControlPlane:
    return ClusterControlPlane(
        id=f"{cluster}-{namespace}-{name}",
        node_id=f"node-{uid}",
        tags=make_tags(namespace, name, uid, cluster),
    )


class FakeNSXClient(NSXClient):
    """In memory NSX manager recording every call.

    Set an exception in `errors` keyed by method name to make that method
    fail.
    """

    def __init__(self) -> None:
        self.supported = True
        self.principal_identities: dict[str, PrincipalIdentity] = {}
        self.cluster_control_planes: dict[str, ClusterControlPlane] = {}
        self.calls: list[tuple[str, Any]] = []
        self.errors: dict[str, Exception] = {}

    def _call(self, method: str, arg: Any = None) -> None:
        self.calls.append((method, arg))
        if (err := self.errors.get(method)) is not None:
            raise err

    @property
    def mutations(self) -> list[tuple[str, Any]]:
        """Calls that changed a record."""
        return [
            call
            for call in self.calls
            if call[0].startswith(("create_", "delete_"))
        ]

    async def check_version(self, feature: str) -> bool:
        self._call("check_version", feature)
        return self.supported

    async def list_principal_identities(self) -> list[PrincipalIdentity]:
        self._call("list_principal_identities")
        return list(self.principal_identities.values())

    async def create_principal_identity(
        self, principal_identity: PrincipalIdentity
    ) -> PrincipalIdentity:
        self._call("create_principal_identity", principal_identity.name)
        if principal_identity.name in self.principal_identities:
            raise NSXException(
                f"PrincipalIdentity {principal_identity.name} already exists"
            )
        created = dataclasses.replace(
            principal_identity,
            id=f"pi-{principal_identity.name}",
            certificate_id=f"cert-{principal_identity.name}",
        )
        self.principal_identities[created.name] = created
        return created

    async def delete_principal_identity(self, name: str) -> None:
        self._call("delete_principal_identity", name)
        if self.principal_identities.pop(name, None) is None:
            raise NSXException(f"PrincipalIdentity {name} not found")

    async def list_cluster_control_planes(self) -> list[ClusterControlPlane]:
        self._call("list_cluster_control_planes")
        return list(self.cluster_control_planes.values())

    async def create_cluster_control_plane(
        self, cluster_control_plane: ClusterControlPlane
    ) -> ClusterControlPlane:
        self._call("create_cluster_control_plane", cluster_control_plane.id)
        if cluster_control_plane.id in self.cluster_control_planes:
            raise NSXException(
                f"ClusterControlPlane {cluster_control_plane.id} already exists"
            )
        created = dataclasses.replace(
            cluster_control_plane, node_id=f"node-{cluster_control_plane.id}"
        )
        self.cluster_control_planes[created.id] = created
        return created

    async def delete_cluster_control_plane(self, cluster_id: str) -> None:
        self._call("delete_cluster_control_plane", cluster_id)
        if self.cluster_control_planes.pop(cluster_id, None) is None:
            raise NSXException(f"ClusterControlPlane {cluster_id} not found")


@pytest.fixture(name="config")
def config_fixture() -> OperatorConfig:
    """Create a test operator configuration."""
    return OperatorConfig(
        cluster_name=CLUSTER_NAME,
        nsx_managers=["dummyHost:443"],
        vpc_path="/orgs/default/projects/project1/vpcs/vpc1",
    )


@pytest.fixture(name="store")
def store_fixture() -> InMemoryStore:
    """Create an in-memory store for testing."""
    return InMemoryStore()


@pytest.fixture(name="client")
def client_fixture() -> FakeNSXClient:
    """Create a fake NSX client."""
    return FakeNSXClient()


@pytest.fixture(name="service")
def service_fixture(
    client: FakeNSXClient, config: OperatorConfig
) -> NSXServiceAccountService:
    """Create an NSX service backed by the fake client."""
    return NSXServiceAccountService(client, config)


@pytest.fixture(name="reconciler")
def reconciler_fixture(
    store: InMemoryStore, service: NSXServiceAccountService, config: OperatorConfig
) -> NSXServiceAccountReconciler:
    """Create a reconciler wired to the store and service."""
    return NSXServiceAccountReconciler(store, service, config)


def make_service_account(
    namespace: str = "ns1", name: str = "name", uid: str = UID1, **kwargs: Any
) -> NSXServiceAccount:
    return NSXServiceAccount(namespace=namespace, name=name, uid=uid, **kwargs)
