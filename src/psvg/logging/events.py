"""Event schema for the render log and the process-wide ``emit`` helpers.

Events are pydantic models serialised one per line by
:class:`psvg.logging.sink.EventSink`.  Timestamps are UTC ISO-8601 with a
``Z`` suffix.  ``emit`` and friends never raise: a broken log must not
break a render, so failures become a rate-limited note on stderr.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    render_started = "render_started"
    render_completed = "render_completed"
    render_failed = "render_failed"
    # formula-looking attribute kept as literal text
    attribute_fallback = "attribute_fallback"
    equation_error = "equation_error"
    check_completed = "check_completed"
    check_failed = "check_failed"
    preview_error = "preview_error"
    preview_saved = "preview_saved"


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class PsvgEvent(BaseModel):
    """One line of the event log."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Context hygiene
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256
_TRUNCATED = "...[truncated]"


def _clip(value: Any) -> Any:
    if isinstance(value, str):
        return value if len(value) <= _MAX_VALUE_LEN else value[:_MAX_VALUE_LEN] + _TRUNCATED
    if isinstance(value, dict):
        return {k: _clip(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_clip(v) for v in value]
    return value


def truncate_context(context: dict[str, Any]) -> dict[str, Any]:
    """Copy *context*, cutting every string (at any nesting) to 256 characters."""
    return _clip(context)


# Context keys an event must carry to be traced back to its input.
_REQUIRED_CONTEXT: dict[EventType, frozenset[str]] = {
    EventType.render_started: frozenset({"source"}),
    EventType.render_completed: frozenset({"source"}),
    EventType.render_failed: frozenset({"source"}),
    EventType.attribute_fallback: frozenset({"source", "attribute"}),
    EventType.equation_error: frozenset({"equation"}),
    EventType.check_completed: frozenset({"source"}),
    EventType.check_failed: frozenset({"source"}),
    EventType.preview_error: frozenset({"source"}),
    EventType.preview_saved: frozenset({"source", "target"}),
}


def _check_attribution(event: PsvgEvent) -> PsvgEvent:
    """Downgrade an event missing required context keys to a warning."""
    missing = _REQUIRED_CONTEXT.get(event.event_type, frozenset()) - set(event.context)
    if not missing:
        return event
    context = {**event.context, "_missing_attribution": sorted(missing)}
    return event.model_copy(update={"level": EventLevel.warning, "context": context})


def make_render_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    source: str,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> PsvgEvent:
    """Build an event attributed to the description file *source*."""
    return PsvgEvent(
        level=level,
        event_type=event_type,
        message=message,
        context={"source": source, **(extra or {})},
        error_code=error_code,
    )


# ---------------------------------------------------------------------------
# Process-wide sink
# ---------------------------------------------------------------------------

_sink: Any = None  # EventSink | None

_STDERR_INTERVAL_SECS = 60.0
_last_stderr: float | None = None


def _warn_stderr(note: str) -> None:
    global _last_stderr
    now = time.monotonic()
    if _last_stderr is not None and now - _last_stderr < _STDERR_INTERVAL_SECS:
        return
    _last_stderr = now
    print(f"[psvg] {note}", file=sys.stderr)


def set_project_dir(project_dir: Path | str) -> None:
    """Point ``emit`` at the log of *project_dir*.

    The ``logging:`` block of ``psvg.yaml`` decides whether events are
    kept at all and how they are written.  Until this is called events
    are dropped.
    """
    global _sink
    from psvg.logging.sink import EventSink
    from psvg.project import DEFAULT_CONFIG, load_project_config

    project_dir = Path(project_dir)
    try:
        cfg = load_project_config(project_dir)
    except (OSError, ValueError, yaml.YAMLError):
        _warn_stderr(f"ignoring invalid logging config:\n{traceback.format_exc()}")
        cfg = DEFAULT_CONFIG

    if not cfg["logging_enabled"]:
        _sink = None
        return
    _sink = EventSink(
        project_dir,
        fsync=bool(cfg["logging_fsync"]),
        tail_bytes=int(cfg["logging_tail_bytes"]),
    )


def reset_sink() -> None:
    """Stop logging; later events are dropped until ``set_project_dir``."""
    global _sink
    _sink = None


def emit(event: PsvgEvent) -> None:
    """Append *event* to the current project's log.  **Never raises.**"""
    sink = _sink
    if sink is None:
        return
    try:
        event = event.model_copy(update={"context": truncate_context(event.context)})
        sink.write(_check_attribution(event))
    except Exception:
        _warn_stderr(f"could not write event:\n{traceback.format_exc()}")


def emit_info(
    event_type: EventType, message: str, context: dict[str, Any] | None = None
) -> None:
    emit(PsvgEvent(level=EventLevel.info, event_type=event_type, message=message,
                   context=context or {}))


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    emit(PsvgEvent(level=EventLevel.warning, event_type=event_type, message=message,
                   context=context or {}, error_code=error_code))


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    emit(PsvgEvent(level=EventLevel.error, event_type=event_type, message=message,
                   context=context or {}, error_code=error_code))
