# === NAVMAP v1 ===
# {
#   "module": "Lavender.fsck.orchestrator",
#   "purpose": "Drive fsck over every docroot and replica of a cluster and fold the outcomes",
#   "sections": [
#     {"id": "compare", "name": "compare_indexes", "anchor": "function-compare-indexes", "kind": "function"},
#     {"id": "agreement", "name": "ReplicaAgreement", "anchor": "class-replicaagreement", "kind": "class"},
#     {"id": "fsck", "name": "Fsck", "anchor": "class-fsck", "kind": "class"},
#     {"id": "run-fsck", "name": "run_fsck", "anchor": "function-run-fsck", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Cluster-wide fsck.

For each docroot the replicas are visited in the declared host order. Each
replica pass builds the aggregate, reconciles references with files,
validates ``.all.idx`` and optionally re-hashes content. A replica without
problems of its own is then compared with the last such replica before it:
both must hold the same index files with equal content. Agreement is
transitive, so comparing neighbours is enough.

Disagreements are reported once per docroot and index file, naming every
pair of hosts that differed, so a single odd replica yields one problem no
matter where it sits in the host order.

Garbage collection runs last for a replica, and only when it has
unreferenced files. Any open problem blocks it and aborts the run.
"""

from __future__ import annotations

import contextvars
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Mapping, Optional, Tuple

from ..docroot import Cluster, Docroot
from ..index import ALL_IDX, Index
from ..observability import emit_event, set_context
from ..replica.base import ReplicaAccess
from ..replica.pool import ConnectionPool
from ..settings import AggregatePolicy, FsckSettings, GcPolicy
from .aggregate import build_aggregate
from .gc import collect_garbage, ensure_gc_allowed
from .integrity import verify_integrity
from .outcomes import DocrootReport, FsckReport, Problem, ProblemKind, ReplicaReport
from .reconcile import find_dangling, find_unreferenced, quarantine_dangling
from .validate import validate_aggregate

logger = logging.getLogger(__name__)

__all__ = ["Fsck", "ReplicaAgreement", "compare_indexes", "run_fsck"]


def compare_indexes(
    previous: Mapping[str, Index], current: Mapping[str, Index]
) -> Tuple[bool, List[str]]:
    """Compare two index mappings.

    Returns:
        Whether the sets of index names differ, and the sorted names of the
        shared indexes whose content differs.
    """

    list_differs = set(previous) != set(current)
    differing = sorted(
        name for name in set(previous) & set(current) if previous[name] != current[name]
    )
    return list_differs, differing


class ReplicaAgreement:
    """Collect replica disagreements for one docroot, keyed by index name."""

    def __init__(self, docroot: str) -> None:
        self.docroot = docroot
        self._pairs: Dict[Tuple[ProblemKind, str], List[Tuple[str, str]]] = {}

    def compare(self, previous: ReplicaReport, current: ReplicaReport) -> None:
        list_differs, differing = compare_indexes(previous.indexes, current.indexes)
        pair = (previous.host, current.host)
        if list_differs:
            logger.error(
                "%s: index file list differs between %s and %s: %s vs %s",
                self.docroot,
                previous.host,
                current.host,
                sorted(previous.indexes),
                sorted(current.indexes),
            )
            self._pairs.setdefault((ProblemKind.INDEX_LIST_DIFFERS, ""), []).append(pair)
        for name in differing:
            logger.error(
                "%s: index files differ: %s (%s vs %s)", self.docroot, name, previous.host, current.host
            )
            self._pairs.setdefault((ProblemKind.INDEX_DIFFERS, name), []).append(pair)

    def __bool__(self) -> bool:
        return bool(self._pairs)

    def problems(self) -> List[Problem]:
        found: List[Problem] = []
        for (kind, name), pairs in self._pairs.items():
            hosts = ", ".join(f"{a} <> {b}" for a, b in pairs)
            if kind is ProblemKind.INDEX_LIST_DIFFERS:
                message = f"index file list differs ({hosts})"
                paths: Tuple[str, ...] = ()
            else:
                message = f"index files differ: {name} ({hosts})"
                paths = (name,)
            found.append(Problem(kind, self.docroot, None, message, paths))
        return found


class Fsck:
    """Consistency check, integrity check and garbage collection for a cluster.

    Args:
        cluster: Hosts and docroots to check
        options: Checks and policies; defaults to :class:`FsckSettings`
        pool: Connection pool to lease replica sessions from; a private
            pool bounded by ``options.max_connections`` is used if omitted
        run_id: Correlation id for emitted events
    """

    def __init__(
        self,
        cluster: Cluster,
        options: Optional[FsckSettings] = None,
        pool: Optional[ConnectionPool] = None,
        *,
        run_id: Optional[str] = None,
    ) -> None:
        self.cluster = cluster
        self.options = options or FsckSettings()
        self.pool = pool
        self.run_id = run_id or str(uuid.uuid4())

    def run(self) -> FsckReport:
        """Check every docroot; fatal errors propagate, problems are reported."""

        set_context(run_id=self.run_id, cluster=self.cluster.name)
        emit_event(
            "fsck.begin",
            payload={
                "docroots": [docroot.name for docroot in self.cluster.docroots],
                "hosts": [host.name for host in self.cluster.hosts],
                "md5check": self.options.md5check,
                "gc": self.options.gc,
            },
        )
        report = FsckReport(cluster=self.cluster.name, run_id=self.run_id)
        own_pool = self.pool is None
        pool = self.pool or ConnectionPool(self.options.max_connections)
        try:
            report.docroots.extend(self._check_docroots(pool))
        finally:
            if own_pool:
                pool.close()

        for problem in report.problems:
            emit_event("fsck.problem", level="ERROR", payload=problem.to_dict())
        emit_event(
            "fsck.complete",
            level="INFO" if report.ok else "ERROR",
            payload={"ok": report.ok, "problems": len(report.problems)},
        )
        return report

    def _check_docroots(self, pool: ConnectionPool) -> List[DocrootReport]:
        docroots = self.cluster.docroots
        workers = min(self.options.workers, len(docroots))
        if workers <= 1:
            return [self.check_docroot(docroot, pool) for docroot in docroots]
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(contextvars.copy_context().run, self.check_docroot, docroot, pool)
                for docroot in docroots
            ]
            return [future.result() for future in futures]

    def check_docroot(self, docroot: Docroot, pool: ConnectionPool) -> DocrootReport:
        """Check every replica of ``docroot`` in host order."""

        logger.info("docroot %s", docroot.name)
        result = DocrootReport(docroot=docroot.name)
        agreement = ReplicaAgreement(docroot.name)
        previous: Optional[ReplicaReport] = None
        for host in self.cluster.hosts:
            with pool.lease(host) as replica:
                report = self.check_replica(replica, docroot)
                result.replicas.append(report)
                if report.exists and report.ok:
                    if previous is not None:
                        agreement.compare(previous, report)
                    previous = report
                if report.exists and report.unreferenced and self.options.gc:
                    if self.options.gc_policy is GcPolicy.DOCROOT:
                        ensure_gc_allowed(result.problems + agreement.problems())
                    else:
                        ensure_gc_allowed(report.problems)
                    report.gc = collect_garbage(
                        replica, docroot.docroot, report.unreferenced, dry_run=self.options.gc_dry_run
                    )
            emit_event(
                "fsck.replica.done",
                payload={"docroot": docroot.name, "host": report.host, "ok": report.ok},
            )
        result.agreement.extend(agreement.problems())
        return result

    def check_replica(self, replica: ReplicaAccess, docroot: Docroot) -> ReplicaReport:
        """Run the per-replica checks; garbage collection is not part of it."""

        report = ReplicaReport(host=replica.host, docroot=docroot.name)
        if not docroot.exists(replica):
            logger.info("%s: %s not found, skipped", replica.host, docroot.docroot)
            report.exists = False
            return report

        files = docroot.list_files(replica)
        report.files = len(files)
        logger.info("%s: %s: %d files", replica.host, docroot.docroot, len(files))

        built = build_aggregate(replica, docroot)
        report.indexes.update(built.indexes)
        references = built.references
        report.references = len(references)
        logger.info("%s: %d index files, %d references", replica.host, len(built.indexes), len(references))

        report.dangling = find_dangling(references, files)
        logger.info("%s: dangling references: %d", replica.host, len(report.dangling))
        if report.dangling:
            for path in report.dangling:
                logger.debug("%s: dangling %s", replica.host, path)
            report.problems.append(
                Problem(
                    ProblemKind.DANGLING_REFERENCES,
                    docroot.name,
                    replica.host,
                    f"{len(report.dangling)} dangling references",
                    tuple(report.dangling),
                )
            )
            report.repaired.extend(quarantine_dangling(replica, docroot, built, report.dangling))
        elif built.indexes:
            outcome = validate_aggregate(
                replica, docroot, built.aggregate, self.options.aggregate_policy
            )
            if outcome.index is not None:
                report.indexes[ALL_IDX] = outcome.index
            if outcome.written is not None and self.options.aggregate_policy is not AggregatePolicy.REPAIR:
                report.repaired.append(outcome.written)
            report.problems.extend(outcome.problems)

        if self.options.md5check:
            report.problems.extend(
                verify_integrity(
                    replica,
                    docroot.docroot,
                    docroot.name,
                    built.aggregate,
                    tool=self.options.hash_tool,
                    batch_size=self.options.batch_size,
                    skip=report.dangling,
                )
            )

        report.unreferenced = find_unreferenced(files, references)
        logger.info("%s: unreferenced files: %d", replica.host, len(report.unreferenced))
        if report.unreferenced and not self.options.gc:
            for path in report.unreferenced:
                logger.debug("%s: unreferenced %s", replica.host, path)
            report.problems.append(
                Problem(
                    ProblemKind.UNREFERENCED_FILES,
                    docroot.name,
                    replica.host,
                    f"{len(report.unreferenced)} unreferenced files (run with --gc to delete them)",
                    tuple(report.unreferenced),
                )
            )

        for problem in report.problems:
            logger.error("%s", problem)
        return report


def run_fsck(
    cluster: Cluster,
    options: Optional[FsckSettings] = None,
    pool: Optional[ConnectionPool] = None,
) -> FsckReport:
    """Run fsck over ``cluster`` and raise :class:`FsckFailedError` on problems."""

    report = Fsck(cluster, options, pool).run()
    report.raise_for_problems()
    return report
