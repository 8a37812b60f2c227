"""FastAPI app behind ``psvg preview``.

The page at ``/`` polls ``/api/svg``; every poll re-reads and re-renders
the description, so edits show up without a restart.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import FileResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from psvg.logging.sink import EventSink
from psvg.ui.service import RENDER_ERRORS, PreviewService

STATIC_DIR = Path(__file__).parent / "static"


class SaveRequest(BaseModel):
    path: str


def get_service(request: Request) -> PreviewService:
    return request.app.state.service


api = APIRouter(prefix="/api")


@api.get("/svg")
def current_svg(svc: PreviewService = Depends(get_service)) -> dict[str, Any]:
    return svc.preview()


@api.get("/svg/raw")
def current_svg_raw(svc: PreviewService = Depends(get_service)) -> Response:
    try:
        svg, _ = svc.render()
    except RENDER_ERRORS as exc:
        raise HTTPException(422, str(exc))
    return Response(content=svg, media_type="image/svg+xml")


@api.post("/save")
def save_svg(req: SaveRequest, svc: PreviewService = Depends(get_service)) -> dict[str, Any]:
    target = Path(req.path)
    if not target.is_absolute():
        target = svc.project_dir / target
    try:
        written = svc.save(target)
    except ValueError as exc:
        raise HTTPException(409, str(exc))
    return {"ok": True, "path": str(written)}


@api.get("/events")
def recent_events(
    level: str | None = Query(None),
    event_type: str | None = Query(None),
    limit: int = Query(100),
    svc: PreviewService = Depends(get_service),
) -> list[dict[str, Any]]:
    return EventSink(svc.project_dir).read_global(
        level=level, event_type=event_type, source=str(svc.source), limit=limit
    )


def create_app(source: Path, config: dict[str, Any] | None = None) -> FastAPI:
    """Build the preview app for the description at *source*.

    Args:
        source: Description file to render.
        config: Settings to use instead of the project's ``psvg.yaml``.
    """
    from psvg import __version__

    app = FastAPI(title="psvg preview", version=__version__)
    app.state.service = PreviewService(source, config=config)
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
    app.include_router(api)

    @app.get("/", include_in_schema=False)
    def index() -> FileResponse:
        return FileResponse(STATIC_DIR / "index.html")

    return app
