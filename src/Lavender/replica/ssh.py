# === NAVMAP v1 ===
# {
#   "module": "Lavender.replica.ssh",
#   "purpose": "Remote shell replica backend driven through the ssh client.",
#   "sections": [
#     {"id": "escape", "name": "escape_argument", "anchor": "function-escape-argument", "kind": "function"},
#     {"id": "commandline", "name": "build_command_line", "anchor": "function-build-command-line", "kind": "function"},
#     {"id": "sshreplica", "name": "SshReplica", "anchor": "class-sshreplica", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Remote shell replica backend.

The remote side only accepts a single command line, so every argument is
quoted before it is concatenated behind ``cd <dir> &&``. Authentication and
connection setup are left to the ssh client configuration
(``~/.ssh/config``, agents, keys); this module only runs commands.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from ..errors import CommandFailedError
from .base import ListPredicate, ReplicaAccess, join, parent, strip_dot_slash

logger = logging.getLogger(__name__)

__all__ = ["SshReplica", "build_command_line", "escape_argument"]


def escape_argument(arg: str) -> str:
    """Quote ``arg`` so the remote shell passes it through as one word.

    Shell syntax inside ``arg`` (globs, braces, ``#``) stays literal.

    Examples:
        >>> escape_argument("a b&c")
        "'a b&c'"
        >>> escape_argument("plain.css")
        'plain.css'
    """

    return shlex.quote(arg)


def build_command_line(directory: str, argv: Sequence[str]) -> str:
    """Return ``cd /<directory> && <argv>`` with every piece escaped."""

    target = "/" + directory.strip("/")
    return " ".join(["cd", escape_argument(target), "&&", *(escape_argument(a) for a in argv)])


@dataclass
class SshReplica(ReplicaAccess):
    """Replica reached through ``ssh [login@]host``.

    Attributes:
        hostname: Remote host name
        login: Optional remote user
        port: Optional ssh port
        root: Remote directory relative paths are resolved against
        ssh_command: Client executable and fixed leading arguments
        options: Extra ``-o`` options passed to the client
        timeout: Optional per-command timeout in seconds
    """

    hostname: str
    login: Optional[str] = None
    port: Optional[int] = None
    root: str = "/"
    ssh_command: Tuple[str, ...] = ("ssh",)
    options: Tuple[str, ...] = field(default_factory=lambda: ("BatchMode=yes",))
    timeout: Optional[float] = None

    @property
    def host(self) -> str:
        return self.hostname

    def _target(self) -> str:
        return f"{self.login}@{self.hostname}" if self.login else self.hostname

    def _remote(self, path: str) -> str:
        return join(self.root, path)

    def _client_argv(self, command_line: str) -> list[str]:
        argv = list(self.ssh_command)
        for option in self.options:
            argv.extend(["-o", option])
        if self.port is not None:
            argv.extend(["-p", str(self.port)])
        argv.extend([self._target(), command_line])
        return argv

    def _exec(
        self,
        directory: str,
        argv: Sequence[str],
        *,
        data: Optional[bytes] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        command_line = build_command_line(self._remote(directory), argv)
        logger.debug("ssh %s: %s", self.hostname, command_line)
        try:
            completed = subprocess.run(
                self._client_argv(command_line),
                input=data,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise CommandFailedError(str(exc), host=self.host, argv=argv) from exc
        if check and completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise CommandFailedError(
                stderr or f"{argv[0]} exited with code {completed.returncode}",
                host=self.host,
                argv=argv,
                returncode=completed.returncode,
                stderr=stderr,
            )
        return completed

    def exists(self, path: str) -> bool:
        completed = self._exec("", ["test", "-e", "/" + self._remote(path)], check=False)
        if completed.returncode not in (0, 1):
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise CommandFailedError(
                stderr or "test exited unexpectedly",
                host=self.host,
                argv=("test", "-e", path),
                returncode=completed.returncode,
                stderr=stderr,
            )
        return completed.returncode == 0

    def list_files(self, path: str, predicate: ListPredicate) -> list[str]:
        if predicate is ListPredicate.FILES:
            argv = ["find", ".", "-type", "f"]
        else:
            argv = ["find", ".", "-mindepth", "1", "-type", "d", "-empty"]
        return sorted(strip_dot_slash(self.run_command(path, argv)))

    def list_directory(self, path: str) -> list[str]:
        return sorted(strip_dot_slash(self.run_command(path, ["ls", "-A"])))

    def run_command(self, path: str, argv: Sequence[str]) -> str:
        completed = self._exec(path, argv)
        return completed.stdout.decode("utf-8", errors="replace")

    def read_bytes(self, path: str) -> bytes:
        return self._exec(parent(path), ["cat", "/" + self._remote(path)]).stdout

    def write_bytes(self, path: str, data: bytes) -> None:
        target = "/" + self._remote(path)
        self.make_directories(parent(path))
        # the redirect has to stay unescaped, so the target goes through sh -c
        self._exec(parent(path), ["sh", "-c", 'cat > "$0"', target], data=data)

    def delete_file(self, path: str) -> None:
        self._exec("", ["rm", "/" + self._remote(path)])

    def delete_directory(self, path: str) -> None:
        self._exec("", ["rmdir", "/" + self._remote(path)])

    def make_directories(self, path: str) -> None:
        self._exec("", ["mkdir", "-p", "/" + self._remote(path)])

    def close(self) -> None:
        """Each command opens its own ssh session; nothing stays open."""
