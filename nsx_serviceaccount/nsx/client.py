"""Contract of the client talking to the NSX manager.

The wire level client lives outside of this library. Implementations are
passed to NSXServiceAccountService explicitly so that several services (and
tests) can each use their own client.
"""

from abc import ABC, abstractmethod

from .model import ClusterControlPlane, PrincipalIdentity

__all__ = [
    "NSXClient",
    "FEATURE_SERVICE_ACCOUNT",
]

FEATURE_SERVICE_ACCOUNT = "ServiceAccount"


class NSXClient(ABC):
    """Client for the NSX manager records used by NSXServiceAccount.

    Every call blocks its caller until the NSX manager answered; deadlines are
    the responsibility of the implementation. Failures raise NSXException.
    """

    @abstractmethod
    async def check_version(self, feature: str) -> bool:
        """Return True if the NSX manager supports the feature."""

    @abstractmethod
    async def list_principal_identities(self) -> list[PrincipalIdentity]:
        """List all principal identities."""

    @abstractmethod
    async def create_principal_identity(
        self, principal_identity: PrincipalIdentity
    ) -> PrincipalIdentity:
        """Create a principal identity and return it as stored by NSX."""

    @abstractmethod
    async def delete_principal_identity(self, name: str) -> None:
        """Delete the principal identity with the name."""

    @abstractmethod
    async def list_cluster_control_planes(self) -> list[ClusterControlPlane]:
        """List all cluster control planes."""

    @abstractmethod
    async def create_cluster_control_plane(
        self, cluster_control_plane: ClusterControlPlane
    ) -> ClusterControlPlane:
        """Create a cluster control plane and return it as stored by NSX."""

    @abstractmethod
    async def delete_cluster_control_plane(self, cluster_id: str) -> None:
        """Delete the cluster control plane with the id."""
