"""NSX manager side of NSXServiceAccount.

This package holds the records owned on the NSX manager, the tags that
correlate them with kubernetes resources, the stores caching them and the
service that creates and deletes them.
"""

from .client import NSXClient
from .model import ClusterControlPlane, PrincipalIdentity
from .service import NSXServiceAccountService
from .store import TagIndexedStore, correlation_uids
from .tags import CorrelationKey, Tag

__all__ = [
    "NSXClient",
    "ClusterControlPlane",
    "PrincipalIdentity",
    "NSXServiceAccountService",
    "TagIndexedStore",
    "correlation_uids",
    "CorrelationKey",
    "Tag",
]
