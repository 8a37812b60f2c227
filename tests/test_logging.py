"""Tests for the psvg structured event logging system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a minimal project directory."""
    (tmp_path / "logs").mkdir()
    return tmp_path


@pytest.fixture
def sink(project_dir: Path):
    from psvg.logging.sink import EventSink

    return EventSink(project_dir)


def _read_lines(project_dir: Path) -> list[dict]:
    log_path = project_dir / "logs" / "events.ndjson"
    return [json.loads(line) for line in log_path.read_text().strip().splitlines()]


# ---------------------------------------------------------------------------
# A) Event schema
# ---------------------------------------------------------------------------


class TestPsvgEvent:
    def test_event_defaults(self):
        from psvg.logging.events import EventLevel, EventType, PsvgEvent

        evt = PsvgEvent(
            level=EventLevel.info,
            event_type=EventType.render_started,
            message="hello",
        )
        assert evt.schema_version == 1
        assert evt.ts.endswith("Z")
        assert evt.level == "info"
        assert evt.event_type == "render_started"
        assert evt.context == {}
        assert evt.error_code is None

    def test_all_event_types_exist(self):
        from psvg.logging.events import EventType

        expected = {
            "render_started",
            "render_completed",
            "render_failed",
            "attribute_fallback",
            "equation_error",
            "check_completed",
            "check_failed",
            "preview_error",
            "preview_saved",
        }
        assert {e.value for e in EventType} == expected

    def test_make_render_event(self):
        from psvg.logging.events import EventLevel, EventType, make_render_event

        evt = make_render_event(
            EventType.render_failed,
            EventLevel.error,
            "boom",
            source="shape.json",
            error_code="undefined_variable",
            extra={"bytes": 0},
        )
        assert evt.context == {"source": "shape.json", "bytes": 0}
        assert evt.error_code == "undefined_variable"


class TestTruncation:
    def test_long_strings_truncated(self):
        from psvg.logging.events import truncate_context

        ctx = truncate_context({"equation": "x" * 300, "n": 5})
        assert ctx["equation"].endswith("...[truncated]")
        assert len(ctx["equation"]) == 256 + len("...[truncated]")
        assert ctx["n"] == 5

    def test_nested_values(self):
        from psvg.logging.events import truncate_context

        ctx = truncate_context({"errors": {"a": "y" * 400}, "items": ["z" * 400, 1]})
        assert ctx["errors"]["a"].endswith("...[truncated]")
        assert ctx["items"][0].endswith("...[truncated]")
        assert ctx["items"][1] == 1

    def test_short_strings_untouched(self):
        from psvg.logging.events import truncate_context

        assert truncate_context({"source": "a.json"}) == {"source": "a.json"}


# ---------------------------------------------------------------------------
# B) Filesystem NDJSON sink
# ---------------------------------------------------------------------------


class TestEventSink:
    def test_write_creates_log(self, sink, project_dir):
        from psvg.logging.events import EventLevel, EventType, PsvgEvent

        sink.write(PsvgEvent(level=EventLevel.info, event_type=EventType.render_started, message="go"))

        lines = _read_lines(project_dir)
        assert len(lines) == 1
        assert lines[0]["message"] == "go"
        assert lines[0]["level"] == "info"

    def test_json_sort_keys(self, sink, project_dir):
        from psvg.logging.events import EventLevel, EventType, PsvgEvent

        sink.write(PsvgEvent(level=EventLevel.info, event_type=EventType.render_started, message="m"))

        line = (project_dir / "logs" / "events.ndjson").read_text().strip()
        keys = list(json.loads(line).keys())
        assert keys == sorted(keys)

    def test_creates_logs_dir(self, tmp_path):
        from psvg.logging.events import EventLevel, EventType, PsvgEvent
        from psvg.logging.sink import EventSink

        sink = EventSink(tmp_path / "fresh")
        sink.write(PsvgEvent(level=EventLevel.info, event_type=EventType.render_started))
        assert (tmp_path / "fresh" / "logs" / "events.ndjson").exists()

    def test_read_most_recent_first(self, sink):
        from psvg.logging.events import EventLevel, EventType, PsvgEvent

        for i in range(3):
            sink.write(PsvgEvent(level=EventLevel.info, event_type=EventType.render_started, message=f"r{i}"))

        events = sink.read_global()
        assert [e["message"] for e in events] == ["r2", "r1", "r0"]
        assert len(sink.read_global(limit=2)) == 2

    def test_read_filters(self, sink):
        from psvg.logging.events import EventLevel, EventType, PsvgEvent

        sink.write(PsvgEvent(
            level=EventLevel.info,
            event_type=EventType.render_completed,
            context={"source": "a.json"},
        ))
        sink.write(PsvgEvent(
            level=EventLevel.error,
            event_type=EventType.render_failed,
            context={"source": "b.json"},
        ))

        assert len(sink.read_global(level="error")) == 1
        assert len(sink.read_global(event_type="render_completed")) == 1
        assert sink.read_global(source="b.json")[0]["level"] == "error"

    def test_skips_malformed_lines(self, sink, project_dir):
        from psvg.logging.events import EventLevel, EventType, PsvgEvent

        sink.write(PsvgEvent(level=EventLevel.info, event_type=EventType.render_started))
        with open(project_dir / "logs" / "events.ndjson", "a") as f:
            f.write("{not json\n")
        assert len(sink.read_global()) == 1

    def test_missing_log_reads_empty(self, tmp_path):
        from psvg.logging.sink import EventSink

        assert EventSink(tmp_path).read_global() == []

    def test_tail_bytes_drops_partial_line(self, project_dir):
        from psvg.logging.events import EventLevel, EventType, PsvgEvent
        from psvg.logging.sink import EventSink

        sink = EventSink(project_dir, tail_bytes=300)
        for i in range(10):
            sink.write(PsvgEvent(level=EventLevel.info, event_type=EventType.render_started, message=f"m{i}"))

        events = sink.read_global()
        assert 0 < len(events) < 10
        assert events[0]["message"] == "m9"


# ---------------------------------------------------------------------------
# C) Emit helpers
# ---------------------------------------------------------------------------


class TestEmitHelpers:
    def test_emit_without_project_dir_is_noop(self):
        import psvg.logging.events as mod

        old_sink = mod._sink
        mod._sink = None
        try:
            # Should not raise
            mod.emit_info(mod.EventType.render_started, "test", {"source": "a.json"})
        finally:
            mod._sink = old_sink

    def test_set_project_dir_enables_logging(self, project_dir):
        from psvg.logging.events import EventType, emit_info, set_project_dir

        set_project_dir(project_dir)
        emit_info(EventType.render_started, "hello from test", {"source": "a.json"})

        lines = _read_lines(project_dir)
        assert len(lines) == 1
        assert lines[0]["message"] == "hello from test"

    def test_emit_error_sets_error_code(self, project_dir):
        from psvg.logging.events import EventType, emit_error, set_project_dir

        set_project_dir(project_dir)
        emit_error(
            EventType.equation_error,
            "boom",
            {"equation": "1/0"},
            error_code="operation_failure",
        )

        parsed = _read_lines(project_dir)[0]
        assert parsed["error_code"] == "operation_failure"
        assert parsed["level"] == "error"

    def test_missing_attribution_downgrades(self, project_dir):
        from psvg.logging.events import EventType, emit_error, set_project_dir

        set_project_dir(project_dir)
        emit_error(EventType.render_failed, "no source given")

        parsed = _read_lines(project_dir)[0]
        assert parsed["level"] == "warning"
        assert parsed["context"]["_missing_attribution"] == ["source"]

    def test_context_truncated_on_emit(self, project_dir):
        from psvg.logging.events import EventType, emit_warning, set_project_dir

        set_project_dir(project_dir)
        emit_warning(
            EventType.attribute_fallback,
            "fallback",
            {"source": "a.json", "attribute": "d", "value": "M" * 1000},
        )

        parsed = _read_lines(project_dir)[0]
        assert parsed["context"]["value"].endswith("...[truncated]")

    def test_logging_disabled_in_config(self, project_dir):
        from psvg.logging.events import EventType, emit_info, set_project_dir

        (project_dir / "psvg.yaml").write_text("logging:\n  enabled: false\n")
        set_project_dir(project_dir)
        emit_info(EventType.render_started, "dropped", {"source": "a.json"})

        assert not (project_dir / "logs" / "events.ndjson").exists()

    def test_emit_never_raises(self, project_dir):
        from psvg.logging.events import EventType, emit_info, set_project_dir

        set_project_dir(project_dir)
        # A directory where the log file should be makes the write fail.
        (project_dir / "logs" / "events.ndjson").mkdir()
        emit_info(EventType.render_started, "lost", {"source": "a.json"})


# ---------------------------------------------------------------------------
# D) Project config
# ---------------------------------------------------------------------------


class TestProjectConfig:
    def test_defaults(self, tmp_path):
        from psvg.project import load_project_config

        cfg = load_project_config(tmp_path)
        assert cfg["max_depth"] == 100
        assert cfg["notify_interval_secs"] == 50.0
        assert cfg["xml_declaration"] == {"version": "1.0", "encoding": "UTF-8"}
        assert cfg["logging_enabled"] is True

    def test_overrides(self, tmp_path):
        from psvg.project import load_project_config

        (tmp_path / "psvg.yaml").write_text(
            "max_depth: 20\nlogging:\n  fsync: true\n  tail_bytes: 1024\n"
        )
        cfg = load_project_config(tmp_path)
        assert cfg["max_depth"] == 20
        assert cfg["logging_fsync"] is True
        assert cfg["logging_tail_bytes"] == 1024

    def test_not_a_mapping(self, tmp_path):
        from psvg.project import load_project_config

        (tmp_path / "psvg.yaml").write_text("- 1\n- 2\n")
        with pytest.raises(ValueError):
            load_project_config(tmp_path)

    def test_invalid_max_depth(self, tmp_path):
        from psvg.project import load_project_config

        (tmp_path / "psvg.yaml").write_text("max_depth: 0\n")
        with pytest.raises(ValueError, match="max_depth"):
            load_project_config(tmp_path)

    def test_project_dir_for(self, tmp_path):
        from psvg.project import project_dir_for

        assert project_dir_for(tmp_path / "shape.json") == tmp_path
        assert project_dir_for(tmp_path) == tmp_path
