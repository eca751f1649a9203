"""Tests for the NSXServiceAccount reconciler."""

from unittest.mock import MagicMock, patch

import pytest

from nsx_serviceaccount.config import OperatorConfig
from nsx_serviceaccount.controller import (
    NSXServiceAccountReconciler,
    RESULT_NORMAL,
    RESULT_REQUEUE,
    RESULT_REQUEUE_AFTER_5MINS,
)
from nsx_serviceaccount.exceptions import (
    ConflictError,
    NSXException,
    ReconcileError,
    ServiceNotConfiguredError,
)
from nsx_serviceaccount.manifest import (
    FINALIZER_NAME,
    NamespacedName,
    NSXServiceAccount,
    NSXServiceAccountStatus,
    Phase,
)
from nsx_serviceaccount.nsx import ClusterControlPlane, NSXServiceAccountService
from nsx_serviceaccount.store import InMemoryStore

from ..conftest import UID1, FakeNSXClient, make_service_account

KEY = NamespacedName("ns1", "name")
DELETION_TIMESTAMP = "2024-01-01T00:00:00Z"


async def create_deleting(store: InMemoryStore, finalizers: list[str]) -> None:
    await store.create_object(
        make_service_account(
            finalizers=finalizers, deletion_timestamp=DELETION_TIMESTAMP
        )
    )


async def test_not_found(
    reconciler: NSXServiceAccountReconciler, client: FakeNSXClient
) -> None:
    """Test a resource that no longer exists needs no work."""
    assert await reconciler.reconcile(KEY) == RESULT_NORMAL
    assert client.calls == []


@pytest.mark.parametrize(
    "initial",
    [
        make_service_account(),
        make_service_account(
            finalizers=[FINALIZER_NAME],
            status=NSXServiceAccountStatus(
                phase=Phase.REALIZED, cluster_name="cl1-ns1-name"
            ),
        ),
        make_service_account(
            finalizers=[FINALIZER_NAME], deletion_timestamp=DELETION_TIMESTAMP
        ),
    ],
    ids=["new", "realized", "deleting"],
)
async def test_version_check_failed(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
    initial: NSXServiceAccount,
) -> None:
    """Test an unsupported NSX version is reported and retried later."""
    client.supported = False
    await store.create_object(initial)

    assert await reconciler.reconcile(KEY) == RESULT_REQUEUE_AFTER_5MINS

    obj = await store.get_object(KEY)
    assert obj
    assert obj.resource_version == "2"
    assert obj.finalizers == initial.finalizers
    assert obj.deletion_timestamp == initial.deletion_timestamp
    assert obj.status.cluster_name == initial.status.cluster_name
    assert obj.status.phase == Phase.FAILED
    assert obj.status.reason == (
        "Error: NSX version check failed, NSXServiceAccount feature is not supported"
    )
    assert client.mutations == []


async def test_version_check_error(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
) -> None:
    """Test a failing version check is retried with backoff."""
    client.errors["check_version"] = NSXException("connection refused")
    await store.create_object(make_service_account())

    with pytest.raises(ReconcileError, match="connection refused") as exc_info:
        await reconciler.reconcile(KEY)
    assert exc_info.value.key == KEY
    assert exc_info.value.result == RESULT_REQUEUE


async def test_add_finalizer_failed(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
) -> None:
    """Test no record is created when the finalizer cannot be added."""
    await store.create_object(make_service_account())

    with patch.object(
        store, "update_object", side_effect=ConflictError("mock error")
    ), pytest.raises(ReconcileError, match="mock error"):
        await reconciler.reconcile(KEY)

    obj = await store.get_object(KEY)
    assert obj
    assert obj.resource_version == "1"
    assert obj.finalizers == []
    assert obj.status == NSXServiceAccountStatus()
    assert client.mutations == []


async def test_create_error(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
) -> None:
    """Test a failure creating records is recorded in the status."""
    client.errors["create_cluster_control_plane"] = NSXException("mock error")
    await store.create_object(make_service_account())

    with pytest.raises(ReconcileError, match="mock error"):
        await reconciler.reconcile(KEY)

    obj = await store.get_object(KEY)
    assert obj
    assert obj.resource_version == "3"
    assert obj.finalizers == [FINALIZER_NAME]
    assert obj.status.phase == Phase.FAILED
    assert obj.status.reason == "Error: mock error"


async def test_create_skip_realized(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
) -> None:
    """Test a realized resource makes no remote mutation."""
    await store.create_object(
        make_service_account(status=NSXServiceAccountStatus(phase=Phase.REALIZED))
    )

    assert await reconciler.reconcile(KEY) == RESULT_NORMAL

    obj = await store.get_object(KEY)
    assert obj
    assert obj.resource_version == "2"
    assert obj.finalizers == [FINALIZER_NAME]
    assert obj.status.phase == Phase.REALIZED
    assert client.mutations == []


async def test_create_success(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
    service: NSXServiceAccountService,
) -> None:
    """Test records are created and the resource is realized."""
    await store.create_object(make_service_account())

    assert await reconciler.reconcile(KEY) == RESULT_NORMAL

    obj = await store.get_object(KEY)
    assert obj
    assert obj.resource_version == "3"
    assert obj.finalizers == [FINALIZER_NAME]
    assert obj.status.phase == Phase.REALIZED
    assert obj.status.reason == ""
    assert obj.status.cluster_name == "cl1-ns1-name"
    assert obj.status.nsx_managers == ["dummyHost:443"]
    assert [secret.name for secret in obj.status.secrets] == ["name-nsx-cert"]
    assert len(service.principal_identity_store.get_by_uid(UID1)) == 1
    assert len(service.cluster_control_plane_store.get_by_uid(UID1)) == 1

    # A second reconcile is a no-op
    client.calls.clear()
    assert await reconciler.reconcile(KEY) == RESULT_NORMAL
    assert client.mutations == []


async def test_finalizer_added_before_records(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
) -> None:
    """Test the finalizer is persisted before any record is created."""
    await store.create_object(make_service_account())
    create = client.create_cluster_control_plane
    finalizers: list[list[str]] = []

    async def check_finalizer(ccp: ClusterControlPlane) -> ClusterControlPlane:
        obj = await store.get_object(KEY)
        assert obj
        finalizers.append(obj.finalizers)
        return await create(ccp)

    with patch.object(client, "create_cluster_control_plane", new=check_finalizer):
        await reconciler.reconcile(KEY)

    assert finalizers == [[FINALIZER_NAME]]


async def test_delete_without_finalizer(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
) -> None:
    """Test a deleting resource without finalizer is left alone."""
    await create_deleting(store, finalizers=[])

    assert await reconciler.reconcile(KEY) == RESULT_NORMAL

    obj = await store.get_object(KEY)
    assert obj
    assert obj.resource_version == "1"
    assert client.mutations == []


async def test_delete_error(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
    service: NSXServiceAccountService,
) -> None:
    """Test the finalizer is kept when records cannot be deleted."""
    await service.create_or_update(make_service_account())
    await create_deleting(store, finalizers=[FINALIZER_NAME])
    client.errors["delete_principal_identity"] = NSXException("mock error")

    with pytest.raises(ReconcileError, match="mock error"):
        await reconciler.reconcile(KEY)

    obj = await store.get_object(KEY)
    assert obj
    assert obj.resource_version == "2"
    assert obj.finalizers == [FINALIZER_NAME]
    assert obj.status.phase == Phase.FAILED
    assert obj.status.reason == "Error: mock error"


async def test_remove_finalizer_failed(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
    service: NSXServiceAccountService,
) -> None:
    """Test a failure removing the finalizer is retried."""
    await service.create_or_update(make_service_account())
    await create_deleting(store, finalizers=[FINALIZER_NAME])

    with patch.object(
        store, "update_object", side_effect=ConflictError("mock error")
    ), pytest.raises(ReconcileError, match="mock error"):
        await reconciler.reconcile(KEY)

    obj = await store.get_object(KEY)
    assert obj
    assert obj.resource_version == "1"
    assert obj.finalizers == [FINALIZER_NAME]
    assert obj.status == NSXServiceAccountStatus()
    assert not client.principal_identities
    assert not client.cluster_control_planes


async def test_delete_success(
    reconciler: NSXServiceAccountReconciler,
    store: InMemoryStore,
    client: FakeNSXClient,
    service: NSXServiceAccountService,
) -> None:
    """Test records are deleted and the resource is released."""
    await service.create_or_update(make_service_account())
    await create_deleting(store, finalizers=[FINALIZER_NAME])

    assert await reconciler.reconcile(KEY) == RESULT_NORMAL

    assert await store.get_object(KEY) is None
    assert not client.principal_identities
    assert not client.cluster_control_planes
    assert len(service.principal_identity_store) == 0


async def test_start_without_service(
    store: InMemoryStore, config: OperatorConfig
) -> None:
    """Test the reconciler cannot start without an NSX service."""
    reconciler = NSXServiceAccountReconciler(store, None, config)
    manager = MagicMock()
    with pytest.raises(ServiceNotConfiguredError):
        await reconciler.start(manager)
    manager.watch.assert_not_called()
