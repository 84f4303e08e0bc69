# === NAVMAP v1 ===
# {
#   "module": "Lavender.fsck.gc",
#   "purpose": "Delete unreferenced files and the directories they leave empty",
#   "sections": [
#     {"id": "gcresult", "name": "GcResult", "anchor": "class-gcresult", "kind": "class"},
#     {"id": "ensure-gc-allowed", "name": "ensure_gc_allowed", "anchor": "function-ensure-gc-allowed", "kind": "function"},
#     {"id": "collect-garbage", "name": "collect_garbage", "anchor": "function-collect-garbage", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Garbage collection for docroot replicas.

Responsibilities:
- Refuse to delete anything while a problem is open
- Delete files no index references
- Remove directories left empty, bottom-up, never the docroot itself
- Dry-run support
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from ..errors import GarbageCollectionRefused, RemoteOutputError
from ..observability import emit_event
from ..replica.base import ListPredicate, ReplicaAccess, join
from .outcomes import Problem

logger = logging.getLogger(__name__)

__all__ = ["GcResult", "collect_garbage", "ensure_gc_allowed"]


@dataclass(frozen=True)
class GcResult:
    """What a garbage collection pass deleted (or would delete)."""

    files_deleted: Tuple[str, ...]
    directories_deleted: Tuple[str, ...]
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files_deleted": len(self.files_deleted),
            "directories_deleted": len(self.directories_deleted),
            "dry_run": self.dry_run,
        }


def ensure_gc_allowed(problems: Sequence[Problem]) -> None:
    """Raise :class:`GarbageCollectionRefused` if any of ``problems`` is open."""

    if problems:
        for problem in problems:
            logger.error("gc blocked by: %s", problem)
        raise GarbageCollectionRefused()


def collect_garbage(
    replica: ReplicaAccess,
    root: str,
    unreferenced: Iterable[str],
    *,
    dry_run: bool = False,
) -> GcResult:
    """Delete ``unreferenced`` files below ``root`` and prune empty directories.

    Args:
        replica: Replica holding the docroot
        root: Docroot path relative to the replica root
        unreferenced: File paths relative to ``root``
        dry_run: If True, only report what would be deleted

    Returns:
        GcResult with the deleted files and directories
    """

    files = tuple(sorted(unreferenced))
    if dry_run:
        # directories emptied by the deletion cannot be known without deleting
        empty = tuple(replica.list_files(root, ListPredicate.EMPTY_DIRECTORIES))
        logger.info("%s: gc dry run, would delete %d files", replica.host, len(files))
        return GcResult(files, empty, dry_run=True)

    for path in files:
        logger.debug("%s: rm %s", replica.host, path)
        replica.delete_file(join(root, path))

    directories: List[str] = []
    while True:
        empty = [d for d in replica.list_files(root, ListPredicate.EMPTY_DIRECTORIES) if d]
        if not empty:
            break
        if set(empty) <= set(directories):
            raise RemoteOutputError(f"{replica.host}: directories reported empty after removal: {empty}")
        for directory in empty:
            logger.debug("%s: rmdir %s", replica.host, directory)
            replica.delete_directory(join(root, directory))
            directories.append(directory)

    logger.info(
        "%s: gc deleted %d files and %d directories", replica.host, len(files), len(directories)
    )
    emit_event(
        "gc.deleted",
        payload={"host": replica.host, "root": root, "files": len(files), "directories": len(directories)},
    )
    return GcResult(files, tuple(directories))
