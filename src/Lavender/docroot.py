"""Docroots and clusters as seen from one replica.

A docroot is an asset tree (``docroot``) plus a directory of index files
(``indexes``), both relative to the replica root. Corrected index files are
never written over the originals; they go to a ``repaired-indexes`` tree next
to the index directory's parent::

    <base>/indexes/<name>/app.idx  ->  <base>/repaired-indexes/<name>/app.idx
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

from .errors import ConfigError, IndexCorruptError, MissingIndexDirectoryError
from .index import ALL_IDX, INDEX_SUFFIX, Index
from .replica.base import ListPredicate, ReplicaAccess, join, parent

if TYPE_CHECKING:  # pragma: no cover - import cycle guard for type checkers only
    from .settings import HostSettings

logger = logging.getLogger(__name__)

__all__ = ["Cluster", "Docroot", "REPAIRED_INDEXES", "layout_conflict"]

REPAIRED_INDEXES = "repaired-indexes"


def _overlaps(first: str, second: str) -> bool:
    return first == second or first.startswith(second + "/") or second.startswith(first + "/")


def layout_conflict(docroot: str, indexes: str) -> Optional[str]:
    """Describe why ``indexes`` cannot be used next to ``docroot``, or return ``None``.

    Index files and repaired copies must live outside the asset tree, or they
    would be listed as unreferenced files and garbage collected.
    """

    repaired = parent(Docroot.repaired_location(join(indexes, ALL_IDX)))
    for kind, path in (("index directory", indexes), ("repaired index directory", repaired)):
        if _overlaps(docroot, path):
            return f"{kind} {path} overlaps docroot {docroot}"
    return None


@dataclass(frozen=True)
class Docroot:
    """Named docroot with its asset tree and index directory."""

    name: str
    docroot: str
    indexes: str

    def __post_init__(self) -> None:
        problem = layout_conflict(self.docroot, self.indexes)
        if problem is not None:
            raise ConfigError(f"docroot {self.name}: {problem}")

    def exists(self, replica: ReplicaAccess) -> bool:
        return replica.exists(self.docroot)

    def index_files(self, replica: ReplicaAccess) -> list[str]:
        """Return the module index paths, excluding the aggregate index.

        Raises:
            MissingIndexDirectoryError: If the index directory does not exist.
        """
        if not replica.exists(self.indexes):
            raise MissingIndexDirectoryError(replica.host, self.indexes)
        names = replica.list_directory(self.indexes)
        return [
            join(self.indexes, name)
            for name in sorted(names)
            if name.endswith(INDEX_SUFFIX) and name != ALL_IDX
        ]

    @property
    def aggregate_index(self) -> str:
        return join(self.indexes, ALL_IDX)

    @staticmethod
    def repaired_location(index_path: str) -> str:
        directory = parent(index_path)
        base = parent(parent(directory))
        return join(base, REPAIRED_INDEXES, posixpath.basename(directory), posixpath.basename(index_path))

    def load_index(self, replica: ReplicaAccess, path: str) -> Index:
        location = f"{replica.host}:{path}"
        try:
            text = replica.read_bytes(path).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise IndexCorruptError(f"not valid UTF-8: {exc}", location=location) from exc
        return Index.parse(text, source=location)

    def save_index(self, replica: ReplicaAccess, path: str, index: Index) -> None:
        replica.write_bytes(path, index.serialize().encode("utf-8"))

    def list_files(self, replica: ReplicaAccess) -> list[str]:
        return replica.list_files(self.docroot, ListPredicate.FILES)


@dataclass(frozen=True)
class Cluster:
    """Hosts replicating the same docroots, in declared order."""

    name: str
    hosts: Tuple["HostSettings", ...]
    docroots: Tuple[Docroot, ...]
