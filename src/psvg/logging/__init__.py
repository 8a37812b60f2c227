"""Structured event logging for psvg.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from psvg.logging.events import (
    EventLevel,
    EventType,
    PsvgEvent,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    make_render_event,
    reset_sink,
    set_project_dir,
    truncate_context,
)
from psvg.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "PsvgEvent",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "make_render_event",
    "reset_sink",
    "set_project_dir",
    "truncate_context",
]
