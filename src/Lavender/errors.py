# === NAVMAP v1 ===
# {
#   "module": "Lavender.errors",
#   "purpose": "Define the exception hierarchy used across index handling, replica access, and fsck",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "index", "name": "Index Errors", "anchor": "IDX", "kind": "api"},
#     {"id": "replica", "name": "Replica & Transport Errors", "anchor": "REP", "kind": "api"},
#     {"id": "fsck", "name": "Fsck Outcomes", "anchor": "FSCK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across index handling, replica access, and fsck.

Fsck separates two families of failures. *Structural* failures (an index that
cannot be parsed, remote output that cannot be paired with its input, an
unknown transport, a missing index directory, garbage collection requested while problems are open) are
raised as exceptions from this module and abort the run. *Reportable*
findings (dangling references, mismatching indexes, broken digests) are not
exceptions at all; they are returned as ``Problem`` values and folded into the
final report, which raises :class:`FsckFailedError` only once every docroot
has been visited.
"""

from __future__ import annotations

from typing import Optional, Sequence

__all__ = [
    "LavenderError",
    "ConfigError",
    "IndexFormatError",
    "IndexCorruptError",
    "DuplicateLabelError",
    "ReplicaError",
    "CommandFailedError",
    "UnsupportedTransportError",
    "RemoteOutputError",
    "MissingIndexDirectoryError",
    "GarbageCollectionRefused",
    "FsckFailedError",
]


class LavenderError(RuntimeError):
    """Base exception for index, replica, and fsck failures."""


class ConfigError(LavenderError):
    """Raised when cluster configuration files or CLI inputs are invalid."""


class IndexFormatError(LavenderError):
    """Raised when a label or index violates the serialization format."""


class IndexCorruptError(IndexFormatError):
    """Raised when a persisted index cannot be parsed.

    ``location`` names the offending file (host and path when known) so the
    operator can inspect it directly.
    """

    def __init__(self, message: str, *, location: Optional[str] = None) -> None:
        super().__init__(f"{location}: {message}" if location else message)
        self.location = location


class DuplicateLabelError(IndexFormatError):
    """Raised when two different labels claim the same lavendelized path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"duplicate lavendelized path with different content: {path}")
        self.path = path


class ReplicaError(LavenderError):
    """Base class for failures talking to a docroot replica."""


class CommandFailedError(ReplicaError):
    """Raised when a command executed on a replica exits unsuccessfully."""

    def __init__(
        self,
        message: str,
        *,
        host: str,
        argv: Sequence[str] = (),
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(f"{host}: {message}")
        self.host = host
        self.argv = tuple(argv)
        self.returncode = returncode
        self.stderr = stderr


class UnsupportedTransportError(ReplicaError):
    """Raised when a host is configured with a transport no backend implements."""


class RemoteOutputError(ReplicaError):
    """Raised when command output cannot be matched positionally to its input.

    This signals a broken assumption about the remote tool's output format,
    not a data problem, so the run is aborted instead of mis-pairing results.
    """


class MissingIndexDirectoryError(ReplicaError):
    """Raised when a docroot exists on a replica but its index directory does not.

    Without indexes every published file would look unreferenced.
    """

    def __init__(self, host: str, path: str) -> None:
        super().__init__(f"{host}: index directory not found: {path}")
        self.host = host
        self.path = path


class GarbageCollectionRefused(LavenderError):
    """Raised when garbage collection is requested while problems are open."""

    def __init__(self, message: str = "garbage collection not allowed - fix the above problems first") -> None:
        super().__init__(message)


class FsckFailedError(LavenderError):
    """Raised after a complete fsck run that recorded at least one problem."""

    def __init__(self, problem_count: int) -> None:
        super().__init__("FSCK FAILED")
        self.problem_count = problem_count
