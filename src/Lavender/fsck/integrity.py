# === NAVMAP v1 ===
# {
#   "module": "Lavender.fsck.integrity",
#   "purpose": "Re-hash published files on a replica and compare with recorded digests",
#   "sections": [
#     {"id": "tools", "name": "Hash tool conventions", "anchor": "TOOL", "kind": "api"},
#     {"id": "batched", "name": "batched", "anchor": "function-batched", "kind": "function"},
#     {"id": "verify-batch", "name": "verify_batch", "anchor": "function-verify-batch", "kind": "function"},
#     {"id": "verify-integrity", "name": "verify_integrity", "anchor": "function-verify-integrity", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Integrity verification of published files.

Paths are hashed on the replica itself, up to ``MAX_BATCH_SIZE`` per command
to stay below command line length limits. Output lines are paired with the
submitted paths by position: one line per path, in submission order. A line
count that differs from the path count means the tool's output convention is
not what we assumed, so it aborts the run instead of pairing wrong lines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Sequence, Tuple, TypeVar

from ..errors import RemoteOutputError
from ..index import Index
from ..replica.base import ReplicaAccess
from ..settings import MAX_BATCH_SIZE, HashTool
from .outcomes import Problem, ProblemKind

logger = logging.getLogger(__name__)

__all__ = [
    "HashMismatch",
    "HashTool",
    "batched",
    "hash_command",
    "parse_digest",
    "verify_batch",
    "verify_integrity",
]

T = TypeVar("T")


@dataclass(frozen=True)
class HashMismatch:
    path: str
    expected: str
    actual: str


# ============================================================================
# HASH TOOL CONVENTIONS (TOOL)
# ============================================================================


def hash_command(tool: HashTool) -> Tuple[str, ...]:
    """Command prefix printing one digest line per argument."""
    if tool is HashTool.MD5:
        return ("md5", "-q")
    return ("md5sum",)


def parse_digest(tool: HashTool, line: str) -> str:
    """Extract the hex digest from one output line of ``tool``.

    ``md5sum`` prints ``<hash>  <path>`` and prefixes the line with a
    backslash when it had to escape the path; ``md5 -q`` prints the hash only.

    Examples:
        >>> parse_digest(HashTool.MD5SUM, "\\\\d41d8cd98f00b204e9800998ecf8427e  a\\\\nb")
        'd41d8cd98f00b204e9800998ecf8427e'
    """

    text = line.strip()
    if tool is HashTool.MD5:
        return text.lower()
    digest = text.split(None, 1)[0] if text else ""
    if digest.startswith("\\"):
        digest = digest[1:]
    return digest.lower()


def batched(items: Iterable[T], size: int = MAX_BATCH_SIZE) -> Iterator[List[T]]:
    """Yield lists of at most ``size`` items.

    Examples:
        >>> [len(batch) for batch in batched(range(1001), 500)]
        [500, 500, 1]
    """

    if size < 1:
        raise ValueError("batch size must be at least 1")
    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch


def verify_batch(
    replica: ReplicaAccess,
    root: str,
    paths: Sequence[str],
    expecteds: Sequence[str],
    tool: HashTool = HashTool.MD5SUM,
) -> List[HashMismatch]:
    """Hash ``paths`` below ``root`` with one command and compare each result.

    Raises:
        RemoteOutputError: If the tool printed more or fewer lines than paths.
    """

    if len(paths) != len(expecteds):
        raise ValueError("paths and expected digests differ in length")
    if not paths:
        return []
    output = replica.run_command(root, [*hash_command(tool), *paths])
    lines = [line for line in output.splitlines() if line.strip()]
    if len(lines) != len(paths):
        raise RemoteOutputError(
            f"{replica.host}: {tool.value} printed {len(lines)} lines for {len(paths)} paths"
        )
    mismatches: List[HashMismatch] = []
    for path, expected, line in zip(paths, expecteds, lines):
        actual = parse_digest(tool, line)
        if actual != expected.lower():
            mismatches.append(HashMismatch(path, expected.lower(), actual))
    return mismatches


def verify_integrity(
    replica: ReplicaAccess,
    root: str,
    docroot_name: str,
    aggregate: Index,
    *,
    tool: HashTool = HashTool.MD5SUM,
    batch_size: int = MAX_BATCH_SIZE,
    skip: Iterable[str] = (),
) -> List[Problem]:
    """Re-hash every label of ``aggregate``; one problem per broken file.

    Paths in ``skip`` (typically dangling references) are not hashed.
    """

    size = min(batch_size, MAX_BATCH_SIZE)
    skipped = set(skip)
    labels = [label for label in aggregate if label.lavendelized_path not in skipped]
    problems: List[Problem] = []
    checked = 0
    for batch in batched(labels, size):
        mismatches = verify_batch(
            replica,
            root,
            [label.original_path for label in batch],
            [label.hex_hash for label in batch],
            tool,
        )
        checked += len(batch)
        for mismatch in mismatches:
            logger.error(
                "%s: md5 mismatch for %s: expected %s, got %s",
                replica.host,
                mismatch.path,
                mismatch.expected,
                mismatch.actual,
            )
            problems.append(
                Problem(
                    ProblemKind.CONTENT_MISMATCH,
                    docroot_name,
                    replica.host,
                    f"content of {mismatch.path} has md5 {mismatch.actual}, expected {mismatch.expected}",
                    (mismatch.path,),
                )
            )
    logger.info("%s: md5 checked %d files, %d mismatches", replica.host, checked, len(problems))
    return problems
