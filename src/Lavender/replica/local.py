# === NAVMAP v1 ===
# {
#   "module": "Lavender.replica.local",
#   "purpose": "Local filesystem replica backend.",
#   "sections": [
#     {
#       "id": "localreplica",
#       "name": "LocalReplica",
#       "anchor": "class-localreplica",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Local filesystem replica backend.

Implements the ReplicaAccess protocol for docroots on a locally mounted disk.
Commands are executed directly from an argv list, so no shell quoting is
involved.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ..errors import CommandFailedError
from .base import ListPredicate, ReplicaAccess

logger = logging.getLogger(__name__)


@dataclass
class LocalReplica(ReplicaAccess):
    """Replica stored below ``root`` on the local machine.

    Attributes:
        root: Directory every relative path is resolved against
        name: Host name reported in logs (defaults to ``localhost``)
        timeout: Optional per-command timeout in seconds
    """

    root: Path
    name: str = "localhost"
    timeout: Optional[float] = None

    @property
    def host(self) -> str:
        return self.name

    def _abs(self, rel: str) -> Path:
        """Convert a relative path to an absolute one, with safety checks.

        Raises:
            ValueError: If path is unsafe (traversal, absolute, backslash)
        """
        if rel.startswith("/") or ".." in Path(rel).parts or "\\" in rel:
            msg = f"unsafe replica relpath: {rel}"
            raise ValueError(msg)
        return self.root / rel if rel else self.root

    def exists(self, path: str) -> bool:
        return self._abs(path).exists()

    def list_files(self, path: str, predicate: ListPredicate) -> list[str]:
        base = self._abs(path)
        out: list[str] = []
        for current, dirs, files in os.walk(base):
            current_path = Path(current)
            if predicate is ListPredicate.FILES:
                for fname in files:
                    out.append((current_path / fname).relative_to(base).as_posix())
            elif not dirs and not files and current_path != base:
                out.append(current_path.relative_to(base).as_posix())
        return sorted(out)

    def list_directory(self, path: str) -> list[str]:
        return sorted(entry.name for entry in self._abs(path).iterdir())

    def run_command(self, path: str, argv: Sequence[str]) -> str:
        cwd = self._abs(path)
        logger.debug("exec in %s: %s", cwd, " ".join(argv))
        try:
            completed = subprocess.run(
                list(argv),
                cwd=cwd,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise CommandFailedError(str(exc), host=self.host, argv=argv) from exc
        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise CommandFailedError(
                stderr or f"{argv[0]} exited with code {completed.returncode}",
                host=self.host,
                argv=argv,
                returncode=completed.returncode,
                stderr=stderr,
            )
        return completed.stdout.decode("utf-8", errors="replace")

    def read_bytes(self, path: str) -> bytes:
        return self._abs(path).read_bytes()

    def write_bytes(self, path: str, data: bytes) -> None:
        dest = self._abs(path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(dest.name + f".tmp-{os.getpid()}")
        try:
            with open(tmp, "wb") as wf:
                wf.write(data)
                wf.flush()
                os.fsync(wf.fileno())
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        os.replace(tmp, dest)

    def delete_file(self, path: str) -> None:
        self._abs(path).unlink()

    def delete_directory(self, path: str) -> None:
        self._abs(path).rmdir()

    def make_directories(self, path: str) -> None:
        self._abs(path).mkdir(parents=True, exist_ok=True)

    def close(self) -> None:
        """Nothing to release for local access."""
