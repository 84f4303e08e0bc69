# === NAVMAP v1 ===
# {
#   "module": "Lavender.fsck.outcomes",
#   "purpose": "Result types returned by fsck checks and folded into the final report",
#   "sections": [
#     {"id": "types", "name": "Problem Types", "anchor": "TYP", "kind": "models"},
#     {"id": "replica", "name": "ReplicaReport", "anchor": "class-replicareport", "kind": "class"},
#     {"id": "docroot", "name": "DocrootReport", "anchor": "class-docrootreport", "kind": "class"},
#     {"id": "fsck", "name": "FsckReport", "anchor": "class-fsckreport", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Result types for fsck runs.

Checks never flip a shared flag; each returns the problems it found and the
orchestrator folds them into a :class:`FsckReport`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from ..errors import FsckFailedError
from ..index import Index

if TYPE_CHECKING:  # pragma: no cover
    from .gc import GcResult

__all__ = ["DocrootReport", "FsckReport", "Problem", "ProblemKind", "ReplicaReport"]


# ============================================================================
# PROBLEM TYPES (TYP)
# ============================================================================


class ProblemKind(str, Enum):
    """Reportable findings; none of them stops the run."""

    DANGLING_REFERENCES = "dangling_references"
    AGGREGATE_MISMATCH = "aggregate_mismatch"
    CONTENT_MISMATCH = "content_mismatch"
    UNREFERENCED_FILES = "unreferenced_files"
    INDEX_LIST_DIFFERS = "index_list_differs"
    INDEX_DIFFERS = "index_differs"


@dataclass(frozen=True)
class Problem:
    """One reportable finding.

    ``host`` is ``None`` for findings that span several replicas.
    """

    kind: ProblemKind
    docroot: str
    host: Optional[str]
    message: str
    paths: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "docroot": self.docroot,
            "host": self.host,
            "message": self.message,
            "paths": list(self.paths),
        }

    def __str__(self) -> str:
        where = f"{self.docroot}@{self.host}" if self.host else self.docroot
        return f"{where}: {self.message}"


@dataclass
class ReplicaReport:
    """Everything learned about one replica of one docroot."""

    host: str
    docroot: str
    exists: bool = True
    files: int = 0
    references: int = 0
    dangling: List[str] = field(default_factory=list)
    unreferenced: List[str] = field(default_factory=list)
    problems: List[Problem] = field(default_factory=list)
    indexes: Dict[str, Index] = field(default_factory=dict)
    repaired: List[str] = field(default_factory=list)
    gc: Optional["GcResult"] = None

    @property
    def ok(self) -> bool:
        return not self.problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "exists": self.exists,
            "files": self.files,
            "references": self.references,
            "dangling": len(self.dangling),
            "unreferenced": len(self.unreferenced),
            "indexes": sorted(self.indexes),
            "repaired": list(self.repaired),
            "gc": self.gc.to_dict() if self.gc is not None else None,
            "problems": [problem.to_dict() for problem in self.problems],
        }


@dataclass
class DocrootReport:
    """Replica reports for one docroot plus cross-replica findings."""

    docroot: str
    replicas: List[ReplicaReport] = field(default_factory=list)
    agreement: List[Problem] = field(default_factory=list)

    @property
    def problems(self) -> List[Problem]:
        found: List[Problem] = []
        for replica in self.replicas:
            found.extend(replica.problems)
        found.extend(self.agreement)
        return found

    @property
    def ok(self) -> bool:
        return not self.problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "docroot": self.docroot,
            "ok": self.ok,
            "replicas": [replica.to_dict() for replica in self.replicas],
            "agreement": [problem.to_dict() for problem in self.agreement],
        }


@dataclass
class FsckReport:
    """Outcome of a complete fsck run over one cluster."""

    cluster: str
    docroots: List[DocrootReport] = field(default_factory=list)
    run_id: Optional[str] = None

    @property
    def problems(self) -> List[Problem]:
        found: List[Problem] = []
        for docroot in self.docroots:
            found.extend(docroot.problems)
        return found

    @property
    def ok(self) -> bool:
        return not self.problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster": self.cluster,
            "run_id": self.run_id,
            "ok": self.ok,
            "problem_count": len(self.problems),
            "docroots": [docroot.to_dict() for docroot in self.docroots],
        }

    def raise_for_problems(self) -> None:
        """Raise :class:`FsckFailedError` if any problem was recorded."""
        problems = self.problems
        if problems:
            raise FsckFailedError(len(problems))
