"""Structured event emission for fsck runs."""

from .events import (
    Event,
    LoggingSink,
    clear_context,
    emit_event,
    get_context,
    register_sink,
    set_context,
    unregister_sink,
)

__all__ = [
    "Event",
    "LoggingSink",
    "clear_context",
    "emit_event",
    "get_context",
    "register_sink",
    "set_context",
    "unregister_sink",
]
