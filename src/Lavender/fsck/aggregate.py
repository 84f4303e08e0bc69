"""Fold the module indexes of one replica into its aggregate index."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Dict, Iterable, Set

from ..docroot import Docroot
from ..errors import DuplicateLabelError, IndexCorruptError
from ..index import Index
from ..replica.base import ReplicaAccess

logger = logging.getLogger(__name__)

__all__ = ["AggregateResult", "aggregate_of", "build_aggregate"]


@dataclass
class AggregateResult:
    """Module indexes of one replica and the references they add up to.

    Attributes:
        indexes: Index file name -> parsed index, in listing order
        paths: Index file name -> path relative to the replica root
        aggregate: Hash-only references of every label of every module
    """

    indexes: Dict[str, Index] = field(default_factory=dict)
    paths: Dict[str, str] = field(default_factory=dict)
    aggregate: Index = field(default_factory=Index)

    @property
    def references(self) -> Set[str]:
        return self.aggregate.references()


def aggregate_of(indexes: Iterable[Index]) -> Index:
    """Return the union of the ``(lavendelized path, hash)`` pairs of ``indexes``.

    Raises:
        DuplicateLabelError: If two indexes reference one path with different hashes.
    """

    aggregate = Index()
    for index in indexes:
        for label in index:
            aggregate.add_reference(label.lavendelized_path, label.content_hash)
    return aggregate


def build_aggregate(replica: ReplicaAccess, docroot: Docroot) -> AggregateResult:
    """Load every module index of ``docroot`` on ``replica`` and fold them.

    Raises:
        IndexCorruptError: If an index cannot be parsed or two modules
            disagree on the hash of the same lavendelized path.
    """

    result = AggregateResult()
    for path in docroot.index_files(replica):
        name = posixpath.basename(path)
        index = docroot.load_index(replica, path)
        logger.debug("%s: %s has %d labels", replica.host, path, len(index))
        result.indexes[name] = index
        result.paths[name] = path
        for label in index:
            try:
                result.aggregate.add_reference(label.lavendelized_path, label.content_hash)
            except DuplicateLabelError as exc:
                raise IndexCorruptError(
                    f"hash of {label.lavendelized_path} conflicts with another module index",
                    location=f"{replica.host}:{path}",
                ) from exc
    return result
