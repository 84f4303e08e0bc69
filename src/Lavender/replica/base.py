"""Replica access abstraction for docroot hosts.

Provides the narrow contract the fsck needs from a host holding a copy of a
docroot, whether the files sit on a local disk or behind a remote shell.

NAVMAP:
  - ListPredicate: Selects what ``list_files`` enumerates
  - ReplicaAccess: Protocol implemented by every backend
  - Core Methods:
    * Queries: exists, list_files, list_directory, read_bytes
    * Commands: run_command (``cd <path> && <argv>``)
    * Mutations: write_bytes, delete_file, delete_directory, make_directories
"""

from __future__ import annotations

import posixpath
from enum import Enum
from typing import Protocol, Sequence, runtime_checkable

__all__ = ["ListPredicate", "ReplicaAccess", "join", "parent", "strip_dot_slash"]


class ListPredicate(str, Enum):
    """What :meth:`ReplicaAccess.list_files` enumerates."""

    FILES = "files"
    EMPTY_DIRECTORIES = "empty-directories"


def join(*parts: str) -> str:
    """Join relative POSIX path segments, ignoring empty ones."""

    cleaned = [part.strip("/") for part in parts if part and part.strip("/")]
    return posixpath.join(*cleaned) if cleaned else ""


def parent(path: str) -> str:
    """Return the parent of a relative POSIX path (``""`` for the root)."""

    return posixpath.dirname(path.rstrip("/"))


def strip_dot_slash(lines: str) -> list[str]:
    """Normalise ``find .`` output into relative paths."""

    result: list[str] = []
    for line in lines.splitlines():
        path = line.strip()
        if path.startswith("./"):
            path = path[2:]
        if path and path != ".":
            result.append(path)
    return result


@runtime_checkable
class ReplicaAccess(Protocol):
    """Contract every replica backend satisfies.

    All paths are POSIX strings relative to the replica root. Implementations
    raise :class:`~Lavender.errors.CommandFailedError` when an operation fails
    on the host; no operation is retried.
    """

    @property
    def host(self) -> str:
        """Display name of the host, used in logs and reports."""
        ...

    def exists(self, path: str) -> bool:
        """Return whether a file or directory exists at ``path``."""
        ...

    def list_files(self, path: str, predicate: ListPredicate) -> list[str]:
        """List entries below ``path`` matching ``predicate``.

        Returns:
            Sorted paths relative to ``path``.
        """
        ...

    def list_directory(self, path: str) -> list[str]:
        """Return the names of the entries directly inside ``path``."""
        ...

    def run_command(self, path: str, argv: Sequence[str]) -> str:
        """Run ``argv`` with ``path`` as working directory and return stdout."""
        ...

    def read_bytes(self, path: str) -> bytes:
        """Return the content of the file at ``path``."""
        ...

    def write_bytes(self, path: str, data: bytes) -> None:
        """Write ``data`` to ``path``, creating parent directories."""
        ...

    def delete_file(self, path: str) -> None:
        """Delete the file at ``path``."""
        ...

    def delete_directory(self, path: str) -> None:
        """Delete the empty directory at ``path``."""
        ...

    def make_directories(self, path: str) -> None:
        """Create ``path`` including missing parents."""
        ...

    def close(self) -> None:
        """Release the underlying session."""
        ...
