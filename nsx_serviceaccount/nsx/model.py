"""NSX records owned by NSXServiceAccount resources."""

from dataclasses import dataclass
from typing import Protocol

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

from .tags import CorrelationKey, Tag, correlation_key, tag_value, TAG_SCOPE_CLUSTER

__all__ = [
    "RemoteRecord",
    "PrincipalIdentity",
    "ClusterControlPlane",
]


class RemoteRecord(Protocol):
    """A record held by the NSX manager and correlated through its tags."""

    tags: list[Tag]

    @property
    def key(self) -> str:
        """The primary identifier of the record on the NSX manager."""


@dataclass(kw_only=True)
class _TaggedRecord(DataClassDictMixin):
    """Shared helpers for records correlated through tags."""

    tags: list[Tag]

    @property
    def correlation(self) -> CorrelationKey | None:
        """The owning resource, if the tags identify one."""
        return correlation_key(self.tags)

    @property
    def cluster(self) -> str | None:
        """The cluster that created the record."""
        return tag_value(self.tags, TAG_SCOPE_CLUSTER)

    class Config(BaseConfig):
        omit_none = True


@dataclass(kw_only=True)
class PrincipalIdentity(_TaggedRecord):
    """A certificate based principal identity on the NSX manager."""

    name: str = ""
    id: str | None = None
    node_id: str = ""
    role: str = ""
    role_path: str = ""
    certificate_id: str | None = None
    is_protected: bool = True

    @property
    def key(self) -> str:
        return self.name


@dataclass(kw_only=True)
class ClusterControlPlane(_TaggedRecord):
    """A cluster control plane trust anchor on the NSX manager."""

    id: str = ""
    node_id: str = ""
    display_name: str = ""
    vhc_path: str = ""

    @property
    def key(self) -> str:
        return self.id
