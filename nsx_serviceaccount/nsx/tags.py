"""Correlation tags attached to NSX records.

NSX records carry no reference to the kubernetes object that owns them other
than their tags. A record belongs to an NSXServiceAccount iff the namespace,
name and uid tags all match the resource exactly.
"""

from dataclasses import dataclass

from mashumaro import DataClassDictMixin

from nsx_serviceaccount.manifest import NamespacedName, NSXServiceAccount

__all__ = [
    "TAG_SCOPE_CLUSTER",
    "TAG_SCOPE_NAMESPACE",
    "TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_NAME",
    "TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_UID",
    "Tag",
    "CorrelationKey",
    "build_tags",
    "correlation_key",
]

TAG_SCOPE_CLUSTER = "nsx-op/cluster"
TAG_SCOPE_NAMESPACE = "nsx-op/namespace"
TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_NAME = "nsx-op/nsx_service_account_name"
TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_UID = "nsx-op/nsx_service_account_uid"


@dataclass(frozen=True)
class Tag(DataClassDictMixin):
    """A scope/value pair attached to a remote record."""

    scope: str
    tag: str


@dataclass(frozen=True, order=True)
class CorrelationKey:
    """The owner of a remote record as encoded in its tags."""

    namespace: str
    name: str
    uid: str

    @property
    def namespaced_name(self) -> NamespacedName:
        return NamespacedName(self.namespace, self.name)

    def matches(self, obj: NSXServiceAccount) -> bool:
        """Return True if the key identifies the given resource."""
        return (
            self.namespace == obj.namespace
            and self.name == obj.name
            and self.uid == obj.uid
        )


def build_tags(cluster_name: str, obj: NSXServiceAccount) -> list[Tag]:
    """Return the tags for remote records owned by the resource."""
    return [
        Tag(scope=TAG_SCOPE_CLUSTER, tag=cluster_name),
        Tag(scope=TAG_SCOPE_NAMESPACE, tag=obj.namespace),
        Tag(scope=TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_NAME, tag=obj.name),
        Tag(scope=TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_UID, tag=obj.uid),
    ]


def tag_value(tags: list[Tag], scope: str) -> str | None:
    """Return the value of the first tag with the scope."""
    for tag in tags:
        if tag.scope == scope:
            return tag.tag
    return None


def correlation_key(tags: list[Tag]) -> CorrelationKey | None:
    """Extract the owner of a record from its tags.

    Returns None unless all three correlation scopes are present.
    """
    namespace = tag_value(tags, TAG_SCOPE_NAMESPACE)
    name = tag_value(tags, TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_NAME)
    uid = tag_value(tags, TAG_SCOPE_NSX_SERVICE_ACCOUNT_CR_UID)
    if not namespace or not name or not uid:
        return None
    return CorrelationKey(namespace=namespace, name=name, uid=uid)
