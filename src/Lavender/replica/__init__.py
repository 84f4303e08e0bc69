"""Replica access backends for docroot hosts."""

from .base import ListPredicate, ReplicaAccess
from .local import LocalReplica
from .pool import ConnectionPool, open_replica
from .ssh import SshReplica

__all__ = [
    "ConnectionPool",
    "ListPredicate",
    "LocalReplica",
    "ReplicaAccess",
    "SshReplica",
    "open_replica",
]
