"""Transport selection and bounded replica session pooling."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Optional

from ..errors import UnsupportedTransportError
from .base import ReplicaAccess
from .local import LocalReplica
from .ssh import SshReplica

if TYPE_CHECKING:  # pragma: no cover
    from ..settings import HostSettings

logger = logging.getLogger(__name__)

__all__ = ["ConnectionPool", "open_replica"]

ReplicaFactory = Callable[["HostSettings"], ReplicaAccess]


def open_replica(host: "HostSettings") -> ReplicaAccess:
    """Return the backend matching ``host.transport``.

    Raises:
        UnsupportedTransportError: If no backend implements the transport.
    """

    transport = host.transport.lower()
    if transport == "local":
        return LocalReplica(root=Path(host.root), name=host.name, timeout=host.timeout_sec)
    if transport == "ssh":
        return SshReplica(
            hostname=host.name,
            login=host.login,
            port=host.port,
            root=host.root,
            options=tuple(host.ssh_options),
            timeout=host.timeout_sec,
        )
    raise UnsupportedTransportError(f"{host.name}: unsupported transport '{host.transport}'")


class ConnectionPool:
    """Bounded pool that reuses replica sessions per host.

    At most ``max_connections`` sessions are leased at any time; further
    callers block until one is returned. Returned sessions are kept idle for
    reuse, up to ``max_idle_per_host`` per host.
    """

    def __init__(
        self,
        max_connections: int = 4,
        max_idle_per_host: int = 1,
        *,
        factory: Optional[ReplicaFactory] = None,
    ) -> None:
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        self._lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(max_connections)
        self._idle: Dict[str, List[ReplicaAccess]] = {}
        self._max_idle_per_host = max_idle_per_host
        self._factory = factory or open_replica
        self._closed = False

    @contextmanager
    def lease(self, host: "HostSettings") -> Iterator[ReplicaAccess]:
        """Yield a session for ``host`` and return it to the pool afterwards."""

        if self._closed:
            raise RuntimeError("connection pool is closed")
        key = host.name
        self._slots.acquire()
        try:
            with self._lock:
                stack = self._idle.get(key)
                session = stack.pop() if stack else None
            if session is None:
                logger.debug("opening session for %s", key)
                session = self._factory(host)
            try:
                yield session
            finally:
                with self._lock:
                    stack = self._idle.setdefault(key, [])
                    keep = not self._closed and len(stack) < self._max_idle_per_host
                    if keep:
                        stack.append(session)
                if not keep:
                    session.close()
        finally:
            self._slots.release()

    def idle_count(self, host_name: str) -> int:
        with self._lock:
            return len(self._idle.get(host_name, ()))

    def close(self) -> None:
        """Close and forget all idle sessions."""

        with self._lock:
            self._closed = True
            sessions = [session for stack in self._idle.values() for session in stack]
            self._idle.clear()
        for session in sessions:
            session.close()

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
