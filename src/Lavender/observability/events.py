# === NAVMAP v1 ===
# {
#   "module": "Lavender.observability.events",
#   "purpose": "Event envelope, correlation context and sink dispatch.",
#   "sections": [
#     {"id": "event", "name": "Event", "anchor": "class-event", "kind": "class"},
#     {"id": "set-context", "name": "set_context", "anchor": "function-set-context", "kind": "function"},
#     {"id": "get-context", "name": "get_context", "anchor": "function-get-context", "kind": "function"},
#     {"id": "clear-context", "name": "clear_context", "anchor": "function-clear-context", "kind": "function"},
#     {"id": "register-sink", "name": "register_sink", "anchor": "function-register-sink", "kind": "function"},
#     {"id": "loggingsink", "name": "LoggingSink", "anchor": "class-loggingsink", "kind": "class"},
#     {"id": "emit-event", "name": "emit_event", "anchor": "function-emit-event", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Event envelope and emission.

Every event carries:
  - ts: UTC ISO 8601 timestamp
  - type: namespaced event type (e.g., "fsck.begin", "gc.deleted")
  - level: INFO|WARN|ERROR
  - run_id: correlates one fsck invocation with all nested events
  - cluster: name of the cluster being checked
  - context: {app_version, os, python, hostname, pid}
  - payload: event-specific fields

Fsck emits ``fsck.begin``, ``fsck.replica.done``, ``fsck.problem``,
``index.repaired``, ``gc.deleted`` and ``fsck.complete``.
"""

import contextvars
import json
import logging
import os
import platform
import sys
import uuid
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

# ============================================================================
# Context Variables (for correlation)
# ============================================================================

_run_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("run_id", default=None)
_cluster_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("cluster", default=None)


# ============================================================================
# Data Models
# ============================================================================


@dataclass(frozen=True)
class EventContext:
    """Runtime context captured at event emission."""

    app_version: str
    os_name: str
    python_version: str
    hostname: str | None = None
    pid: int | None = None


@dataclass(frozen=True)
class Event:
    """Event envelope shared by every emitted event."""

    ts: str
    type: str
    level: str
    run_id: str
    cluster: str
    context: EventContext
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ts": self.ts,
            "type": self.type,
            "level": self.level,
            "run_id": self.run_id,
            "cluster": self.cluster,
            "context": asdict(self.context),
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


# ============================================================================
# Context Management
# ============================================================================


def set_context(run_id: str | None = None, cluster: str | None = None) -> None:
    """Set correlation context for emitted events.

    Example:
        >>> set_context(run_id="uuid-123", cluster="prod")
    """
    if run_id is not None:
        _run_id_var.set(run_id)
    if cluster is not None:
        _cluster_var.set(cluster)


def get_context() -> dict[str, str | None]:
    return {"run_id": _run_id_var.get(), "cluster": _cluster_var.get()}


def clear_context() -> None:
    """Clear correlation context (idempotent)."""
    _run_id_var.set(None)
    _cluster_var.set(None)


# ============================================================================
# Sinks
# ============================================================================

_sinks: list = []


def register_sink(sink) -> None:
    """Register an object with an ``emit(event)`` method."""
    _sinks.append(sink)


def unregister_sink(sink) -> None:
    if sink in _sinks:
        _sinks.remove(sink)


class LoggingSink:
    """Forward events to a logger at DEBUG as JSON lines."""

    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logging.getLogger("Lavender.events")

    def emit(self, event: Event) -> None:
        self._logger.debug(
            "event %s",
            event.type,
            extra={"run_id": event.run_id, "extra_fields": {"event": event.to_dict()}},
        )


# ============================================================================
# Event Emission
# ============================================================================


def _app_version() -> str:
    from .. import __version__

    return __version__


def emit_event(
    type: str,
    level: str = "INFO",
    payload: dict[str, Any] | None = None,
    run_id: str | None = None,
    cluster: str | None = None,
) -> Event:
    """Emit a structured event to all registered sinks.

    Args:
        type: Event type (e.g., "fsck.problem")
        level: Event level: INFO|WARN|ERROR
        payload: Event-specific data
        run_id: Override context run_id
        cluster: Override context cluster

    Returns:
        The emitted Event

    Raises:
        ValueError: If type is empty or level is unknown
    """
    ctx = get_context()
    run_id = run_id or ctx["run_id"] or str(uuid.uuid4())
    cluster = cluster or ctx["cluster"] or "default"

    if not type or not level:
        raise ValueError("Event type and level are required")
    if level not in ("INFO", "WARN", "ERROR"):
        raise ValueError(f"Invalid level: {level}; must be INFO|WARN|ERROR")

    event = Event(
        ts=datetime.now(UTC).isoformat(),
        type=type,
        level=level,
        run_id=run_id,
        cluster=cluster,
        context=EventContext(
            app_version=_app_version(),
            os_name=platform.system(),
            python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
            hostname=os.getenv("HOSTNAME", None),
            pid=os.getpid(),
        ),
        payload=payload or {},
    )

    # a failing sink must not abort the run
    for sink in list(_sinks):
        try:
            sink.emit(event)
        except Exception as e:
            logger.error(f"Error emitting to sink {sink.__class__.__name__}: {e}")

    return event


__all__ = [
    "Event",
    "EventContext",
    "LoggingSink",
    "clear_context",
    "emit_event",
    "get_context",
    "register_sink",
    "set_context",
    "unregister_sink",
]
