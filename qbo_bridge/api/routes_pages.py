from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, PlainTextResponse, Response

from qbo_bridge.core.config import Settings, get_settings


router = APIRouter(include_in_schema=False)


@router.get("/")
async def index(settings: Settings = Depends(get_settings)) -> Response:
    page = Path(settings.pages_dir) / "index.html"
    if not page.is_file():
        return PlainTextResponse("index.html not found", status_code=404)
    return FileResponse(page, media_type="text/html; charset=utf-8")
