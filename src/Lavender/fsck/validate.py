"""Compare the persisted aggregate index with the one computed from the modules."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..docroot import Docroot
from ..index import Index
from ..observability import emit_event
from ..replica.base import ReplicaAccess
from ..settings import AggregatePolicy
from .outcomes import Problem, ProblemKind

logger = logging.getLogger(__name__)

__all__ = ["AggregateOutcome", "validate_aggregate"]


@dataclass
class AggregateOutcome:
    """Result of checking ``.all.idx`` on one replica.

    Attributes:
        index: The aggregate index now on the replica (``None`` if there is none)
        matches: Whether the persisted aggregate equalled the computed one
        written: Path of the file written, if any
        problems: ``aggregate_mismatch`` findings
    """

    index: Optional[Index]
    matches: bool
    written: Optional[str] = None
    problems: List[Problem] = field(default_factory=list)


def validate_aggregate(
    replica: ReplicaAccess,
    docroot: Docroot,
    computed: Index,
    policy: AggregatePolicy = AggregatePolicy.PROBLEM,
) -> AggregateOutcome:
    """Check the persisted aggregate of ``docroot`` against ``computed``.

    A missing ``.all.idx`` counts as an empty index. On mismatch ``policy``
    decides: ``problem`` and ``quarantine`` write ``computed`` to the
    repaired location (only ``problem`` reports it), ``repair`` overwrites
    the persisted file.
    """

    path = docroot.aggregate_index
    persisted: Optional[Index] = None
    if replica.exists(path):
        persisted = docroot.load_index(replica, path)
    if persisted is not None and persisted == computed:
        logger.info("%s: %s ok (%d references)", replica.host, path, len(computed))
        return AggregateOutcome(index=persisted, matches=True)

    found = len(persisted) if persisted is not None else "no"
    if policy is AggregatePolicy.REPAIR:
        docroot.save_index(replica, path, computed)
        logger.warning("%s: rewrote %s (%d references, %s before)", replica.host, path, len(computed), found)
        emit_event(
            "index.repaired",
            level="WARN",
            payload={"host": replica.host, "docroot": docroot.name, "index": path, "policy": policy.value},
        )
        return AggregateOutcome(index=computed, matches=False, written=path)

    target = Docroot.repaired_location(path)
    docroot.save_index(replica, target, computed)
    emit_event(
        "index.repaired",
        level="WARN",
        payload={"host": replica.host, "docroot": docroot.name, "index": path, "path": target, "policy": policy.value},
    )
    message = f"{path} does not match the module indexes ({found} vs {len(computed)} references), fixed copy in {target}"
    if policy is AggregatePolicy.QUARANTINE:
        logger.warning("%s: %s", replica.host, message)
        return AggregateOutcome(index=persisted, matches=False, written=target)
    problem = Problem(ProblemKind.AGGREGATE_MISMATCH, docroot.name, replica.host, message, (path,))
    return AggregateOutcome(index=persisted, matches=False, written=target, problems=[problem])
