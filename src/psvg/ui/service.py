"""Render service shared by the CLI and the preview server."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from psvg.builder import SvgBuilder
from psvg.description import DescriptionError, load_description
from psvg.equations.errors import EquationError
from psvg.logging.events import (
    EventLevel,
    EventType,
    emit,
    emit_warning,
    make_render_event,
    set_project_dir,
)
from psvg.notify import ErrorNotifier
from psvg.project import load_project_config, project_dir_for

RENDER_ERRORS = (EquationError, DescriptionError, OSError)


class PreviewService:
    """Renders one description file and tracks its last good output.

    Args:
        source: Path of the ``.json``/``.yaml`` description.
        config: Overrides the configuration read from ``psvg.yaml``.
    """

    def __init__(self, source: Path, config: dict[str, Any] | None = None) -> None:
        self.source = Path(source)
        self.project_dir = project_dir_for(self.source)
        self.config = config if config is not None else load_project_config(self.project_dir)
        self.notifier = ErrorNotifier(self.config["notify_interval_secs"])
        self.last_svg: str | None = None
        set_project_dir(self.project_dir)

    def _event(self, event_type: EventType, level: EventLevel, message: str, **kw: Any) -> None:
        emit(make_render_event(event_type, level, message, source=str(self.source), **kw))

    def render(self) -> tuple[str, list[str]]:
        """Render the description file.

        Returns:
            Tuple of (svg_text, warnings).

        Raises:
            EquationError: If a coordinate or the document fails to evaluate.
            DescriptionError: If the description is malformed.
            OSError: If the file cannot be read.
        """
        self._event(EventType.render_started, EventLevel.info, f"Rendering {self.source.name}")
        try:
            builder = SvgBuilder(
                load_description(self.source), max_depth=self.config["max_depth"]
            )
            svg = builder.render(self.config["xml_declaration"])
        except RENDER_ERRORS as exc:
            self._event(
                EventType.render_failed,
                EventLevel.error,
                str(exc),
                error_code=getattr(exc, "code", type(exc).__name__),
            )
            raise

        for warning in builder.warnings:
            attr = warning.split(":", 1)[0]
            emit_warning(
                EventType.attribute_fallback,
                warning,
                {"source": str(self.source), "attribute": attr},
            )
        self._event(
            EventType.render_completed,
            EventLevel.info,
            f"Rendered {self.source.name}",
            extra={"bytes": len(svg), "warnings": len(builder.warnings)},
        )
        self.last_svg = svg
        return svg, builder.warnings

    def preview(self) -> dict[str, Any]:
        """Render for the live preview, throttling repeated failures.

        Returns:
            ``{"ok": True, "svg": ..., "warnings": [...]}`` on success, or
            ``{"ok": False, "error": ..., "notify": bool}`` on failure.
        """
        try:
            svg, warnings = self.render()
        except RENDER_ERRORS as exc:
            message = str(exc)
            notify = self.notifier.should_notify(message)
            if notify:
                self._event(EventType.preview_error, EventLevel.error, message)
            return {"ok": False, "error": message, "notify": notify}
        self.notifier.reset()
        return {"ok": True, "svg": svg, "warnings": warnings}

    def save(self, target: Path) -> Path:
        """Write the last successfully rendered SVG to *target*.

        Raises:
            ValueError: If nothing has rendered successfully yet.
        """
        if self.last_svg is None:
            raise ValueError("Nothing to save: the description has not rendered successfully")
        target = Path(target)
        if target.suffix.lower() != ".svg":
            target = target.with_suffix(".svg")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.last_svg, encoding="utf-8")
        self._event(
            EventType.preview_saved,
            EventLevel.info,
            f"Saved {target.name}",
            extra={"target": str(target)},
        )
        return target
