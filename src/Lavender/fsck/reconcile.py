"""Match index references against the files present on a replica."""

from __future__ import annotations

import logging
from typing import Iterable, List, Set

from ..docroot import Docroot
from ..index import Index
from ..observability import emit_event
from ..replica.base import ReplicaAccess
from .aggregate import AggregateResult

logger = logging.getLogger(__name__)

__all__ = ["find_dangling", "find_unreferenced", "quarantine_dangling", "strip_references"]


def find_dangling(references: Iterable[str], files: Iterable[str]) -> List[str]:
    """Referenced paths with no file behind them, sorted."""
    return sorted(set(references) - set(files))


def find_unreferenced(files: Iterable[str], references: Iterable[str]) -> List[str]:
    """Files no index references, sorted."""
    return sorted(set(files) - set(references))


def strip_references(index: Index, paths: Set[str]) -> Index:
    """Return a copy of ``index`` without the labels served under ``paths``."""
    return Index([label for label in index if label.lavendelized_path not in paths])


def quarantine_dangling(
    replica: ReplicaAccess,
    docroot: Docroot,
    built: AggregateResult,
    dangling: Iterable[str],
) -> List[str]:
    """Write every module index that loses labels to its repaired location.

    Originals are left untouched. Returns the paths written.
    """

    missing = set(dangling)
    written: List[str] = []
    for name, index in built.indexes.items():
        repaired = strip_references(index, missing)
        if len(repaired) == len(index):
            continue
        target = Docroot.repaired_location(built.paths[name])
        docroot.save_index(replica, target, repaired)
        logger.warning(
            "%s: wrote %s without %d dangling references",
            replica.host,
            target,
            len(index) - len(repaired),
        )
        emit_event(
            "index.repaired",
            level="WARN",
            payload={"host": replica.host, "docroot": docroot.name, "index": name, "path": target},
        )
        written.append(target)
    return written
