"""Thin FastAPI adapter over `SyncService`; transport only."""
from __future__ import annotations

from typing import List, Optional, Union

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import DapSyncSettings
from .playlist_source import PlaylistSourceUnavailable
from .service import SaveError, SyncService


class SelectionPayload(BaseModel):
    music_mode: Optional[str] = None
    music_albums: Optional[List[str]] = None
    audiobooks_mode: Optional[str] = None
    audiobooks: Optional[List[str]] = None
    playlist_ids: Optional[List[Union[str, int]]] = None
    playlist_mode: Optional[str] = None
    # Older UI builds posted these
    mode: Optional[str] = None
    albums: Optional[List[str]] = None


def build_router(service: SyncService) -> APIRouter:
    router = APIRouter(prefix="/api")

    @router.get("/albums")
    def albums():
        return service.albums_payload()

    @router.get("/selection")
    def get_selection():
        return service.selection_payload()

    @router.post("/selection")
    def post_selection(payload: SelectionPayload):
        try:
            service.save_selection(
                music_mode=payload.music_mode or payload.mode or "all",
                music_albums=payload.music_albums or payload.albums or [],
                audiobooks_mode=payload.audiobooks_mode or "all",
                audiobooks=payload.audiobooks or [],
                playlist_ids=payload.playlist_ids or [],
                playlist_mode=payload.playlist_mode or "selected",
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except SaveError as e:
            return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
        return {"success": True, "message": "Selection saved successfully"}

    @router.get("/playlists")
    def playlists():
        try:
            return service.playlists_payload()
        except PlaylistSourceUnavailable as e:
            return JSONResponse(status_code=503, content={"error": str(e)})

    return router


def create_app(settings: Optional[DapSyncSettings] = None, service: Optional[SyncService] = None) -> FastAPI:
    service = service or SyncService(settings or DapSyncSettings.load())
    app = FastAPI(title="dapsync")
    app.include_router(build_router(service))
    return app
