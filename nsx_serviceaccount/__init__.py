"""Reconciliation and garbage collection of NSXServiceAccount resources.

An NSXServiceAccount resource is kept in sync with the principal identity
and cluster control plane records it owns on the NSX manager.
"""

__all__ = [
    "config",
    "controller",
    "exceptions",
    "manifest",
    "nsx",
    "store",
]
