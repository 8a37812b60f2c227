"""Tests for the preview service, error notifier and preview server."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from psvg.notify import ErrorNotifier
from psvg.ui.service import PreviewService


# ────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────


DESCRIPTION: dict[str, Any] = {
    "equations": {"r": {"value": "vbw/4"}},
    "attributes": {"viewBox": "0 0 100 100"},
    "svgcomponents": [
        {"type": "circle", "cx": "vbw/2", "cy": "vbh/2", "r": "r", "attributes": {"fill": "red"}},
    ],
}


@pytest.fixture
def source(tmp_path: Path) -> Path:
    path = tmp_path / "dot.json"
    path.write_text(json.dumps(DESCRIPTION))
    return path


@pytest.fixture
def broken_source(tmp_path: Path) -> Path:
    path = tmp_path / "broken.json"
    path.write_text(json.dumps({"svgcomponents": [{"type": "polygon", "points": [["nope", 0]]}]}))
    return path


def _events(project_dir: Path) -> list[dict[str, Any]]:
    log_path = project_dir / "logs" / "events.ndjson"
    if not log_path.exists():
        return []
    return [json.loads(line) for line in log_path.read_text().splitlines() if line.strip()]


# ────────────────────────────────────────────────────────────────
# Notifier
# ────────────────────────────────────────────────────────────────


class TestErrorNotifier:
    """Duplicate messages are suppressed and new ones throttled."""

    def _notifier(self) -> tuple[ErrorNotifier, list[float]]:
        now = [0.0]
        return ErrorNotifier(50.0, clock=lambda: now[0]), now

    def test_first_message_shown(self) -> None:
        notifier, _ = self._notifier()
        assert notifier.should_notify("a") is True

    def test_duplicate_suppressed(self) -> None:
        notifier, now = self._notifier()
        notifier.should_notify("a")
        now[0] = 500.0
        assert notifier.should_notify("a") is False

    def test_new_message_throttled(self) -> None:
        notifier, now = self._notifier()
        notifier.should_notify("a")
        now[0] = 10.0
        assert notifier.should_notify("b") is False
        now[0] = 60.0
        assert notifier.should_notify("b") is True

    def test_reset(self) -> None:
        notifier, now = self._notifier()
        notifier.should_notify("a")
        notifier.reset()
        now[0] = 1.0
        assert notifier.should_notify("a") is True


# ────────────────────────────────────────────────────────────────
# Service
# ────────────────────────────────────────────────────────────────


class TestPreviewService:
    def test_render(self, source: Path) -> None:
        svc = PreviewService(source)
        svg, warnings = svc.render()
        assert svg.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert 'cx="50"' in svg
        assert warnings == []
        assert svc.last_svg == svg

    def test_render_events(self, source: Path) -> None:
        svc = PreviewService(source)
        svc.render()
        types = [e["event_type"] for e in _events(svc.project_dir)]
        assert types == ["render_started", "render_completed"]

    def test_fallback_events(self, tmp_path: Path) -> None:
        path = tmp_path / "warn.json"
        path.write_text(json.dumps({"svgcomponents": [{"type": "rect", "width": "=w"}]}))
        svc = PreviewService(path)
        _, warnings = svc.render()
        assert len(warnings) == 1
        fallback = [e for e in _events(tmp_path) if e["event_type"] == "attribute_fallback"]
        assert fallback[0]["context"]["attribute"] == "width"
        assert fallback[0]["level"] == "warning"
        assert fallback[0]["context"]["source"] == str(path)
        assert "_missing_attribution" not in fallback[0]["context"]

    def test_render_failure(self, broken_source: Path) -> None:
        from psvg.equations import UndefinedVariableError

        svc = PreviewService(broken_source)
        with pytest.raises(UndefinedVariableError):
            svc.render()
        failed = [e for e in _events(svc.project_dir) if e["event_type"] == "render_failed"]
        assert failed[0]["error_code"] == "undefined_variable"

    def test_config_from_yaml(self, source: Path) -> None:
        (source.parent / "psvg.yaml").write_text(
            "xml_declaration:\n  version: '1.0'\nmax_depth: 5\n"
        )
        svc = PreviewService(source)
        assert svc.config["max_depth"] == 5
        svg, _ = svc.render()
        assert svg.startswith('<?xml version="1.0"?>\n')

    def test_preview_ok(self, source: Path) -> None:
        result = PreviewService(source).preview()
        assert result["ok"] is True
        assert "<circle" in result["svg"]

    def test_preview_failure_notifies_once(self, broken_source: Path) -> None:
        svc = PreviewService(broken_source)
        first = svc.preview()
        second = svc.preview()
        assert first["ok"] is False
        assert first["notify"] is True
        assert "nope" in first["error"]
        assert second["notify"] is False
        errors = [e for e in _events(svc.project_dir) if e["event_type"] == "preview_error"]
        assert len(errors) == 1

    def test_save_requires_render(self, source: Path) -> None:
        svc = PreviewService(source)
        with pytest.raises(ValueError, match="Nothing to save"):
            svc.save(source.parent / "out.svg")

    def test_save(self, source: Path) -> None:
        svc = PreviewService(source)
        svc.render()
        written = svc.save(source.parent / "exports" / "out")
        assert written == source.parent / "exports" / "out.svg"
        assert written.read_text().startswith("<?xml")
        saved = [e for e in _events(svc.project_dir) if e["event_type"] == "preview_saved"]
        assert saved[0]["context"]["target"] == str(written)


# ────────────────────────────────────────────────────────────────
# FastAPI endpoints
# ────────────────────────────────────────────────────────────────


class TestPreviewServer:
    @pytest.fixture
    def client(self, source: Path):
        from fastapi.testclient import TestClient

        from psvg.ui.server import create_app

        return TestClient(create_app(source))

    def test_index(self, client) -> None:
        resp = client.get("/")
        assert resp.status_code == 200
        assert "psvg preview" in resp.text

    def test_svg(self, client) -> None:
        resp = client.get("/api/svg")
        assert resp.status_code == 200
        data = resp.json()
        assert data["ok"] is True
        assert "<circle" in data["svg"]
        assert data["warnings"] == []

    def test_svg_raw(self, client) -> None:
        resp = client.get("/api/svg/raw")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("image/svg+xml")
        assert resp.text.startswith("<?xml")

    def test_svg_raw_error(self, broken_source: Path) -> None:
        from fastapi.testclient import TestClient

        from psvg.ui.server import create_app

        client = TestClient(create_app(broken_source))
        resp = client.get("/api/svg/raw")
        assert resp.status_code == 422
        assert "nope" in resp.json()["detail"]

    def test_oversized_coordinate_is_422(self, tmp_path: Path) -> None:
        from fastapi.testclient import TestClient

        from psvg.ui.server import create_app

        path = tmp_path / "huge.json"
        path.write_text(json.dumps({"svgcomponents": [{"type": "polygon", "points": [["10^68^64", 0]]}]}))
        client = TestClient(create_app(path))
        resp = client.get("/api/svg/raw")
        assert resp.status_code == 422
        assert "Result too large" in resp.json()["detail"]

    def test_save_before_render(self, client) -> None:
        resp = client.post("/api/save", json={"path": "out.svg"})
        assert resp.status_code == 409

    def test_save_relative(self, client, source: Path) -> None:
        client.get("/api/svg")
        resp = client.post("/api/save", json={"path": "out.svg"})
        assert resp.status_code == 200
        assert resp.json()["ok"] is True
        assert (source.parent / "out.svg").exists()

    def test_events(self, client) -> None:
        client.get("/api/svg")
        resp = client.get("/api/events", params={"event_type": "render_completed"})
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        assert data[0]["context"]["source"].endswith("dot.json")
