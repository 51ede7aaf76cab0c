import time
from fastapi import FastAPI, Depends, HTTPException, Header
from typing import TYPE_CHECKING, Optional
from .config import settings
from .models import Preferences

if TYPE_CHECKING:
    from .main import SyncService

app = FastAPI(title="Congregation Content Sync")
service: Optional["SyncService"] = None

def get_token(x_token: Optional[str] = Header(None, alias="X-Token")):
    if settings.HTTP_SERVER_TOKEN and x_token != settings.HTTP_SERVER_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")

def get_service() -> "SyncService":
    if service is None:
        raise HTTPException(status_code=503, detail="Service starting")
    return service

@app.get("/healthz")
def healthz():
    if not service:
        return {"status": "starting"}

    fetched_at = service.playlist.fetched_at
    # Lenient: a couple of missed refreshes before reporting lag
    if time.time() - fetched_at > (settings.REFRESH_INTERVAL_SECONDS * 3 + 60):
        return {"status": "lagging", "last_fetch_age": time.time() - fetched_at}

    return {"status": "ok"}

@app.get("/status", dependencies=[Depends(get_token)])
def status():
    if not service:
        return {"status": "not_ready"}

    playlist = service.playlist
    return {
        "playlist_items": len(playlist.items),
        "playlist_valid_ids": len(playlist.cache.valid_ids),
        "playlist_last_fetch": playlist.fetched_at,
        "playlist_last_checked": playlist.cache.last_checked_at,
        "announcements": len(service.announcements.items),
        "scripture_chapters": len(service.scripture),
        "config": {
            "interval": settings.REFRESH_INTERVAL_SECONDS,
            "probe_mode": settings.PROBE_MODE,
            "probe_concurrency": settings.PROBE_CONCURRENCY
        }
    }

@app.get("/playlist", dependencies=[Depends(get_token)])
def playlist():
    return get_service().playlist.snapshot().model_dump()

@app.post("/playlist/refresh", dependencies=[Depends(get_token)])
async def refresh_playlist():
    snap = await get_service().refresh_playlist()
    return snap.model_dump()

@app.post("/playlist/validate", dependencies=[Depends(get_token)])
async def validate_playlist():
    snap = await get_service().playlist.validate_all()
    return snap.model_dump()

@app.post("/playlist/select/{item_id}", dependencies=[Depends(get_token)])
async def select_item(item_id: str):
    sync = get_service().playlist
    if sync.get_item(item_id) is None:
        raise HTTPException(status_code=404, detail="Unknown item")
    sync.select(item_id)
    return sync.snapshot().model_dump()

@app.post("/playlist/items/{item_id}/unavailable", dependencies=[Depends(get_token)])
async def report_unavailable(item_id: str):
    sync = get_service().playlist
    sync.report_unavailable(item_id)
    return sync.snapshot().model_dump()

@app.get("/announcements", dependencies=[Depends(get_token)])
def announcements():
    return get_service().announcements.snapshot().model_dump()

@app.post("/announcements/refresh", dependencies=[Depends(get_token)])
async def refresh_announcements():
    snap = await get_service().refresh_announcements()
    return snap.model_dump()

@app.get("/scripture", dependencies=[Depends(get_token)])
async def scripture(ref: str):
    try:
        snap = await get_service().lookup_scripture(ref)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return snap.model_dump()

@app.get("/preferences", dependencies=[Depends(get_token)])
def get_preferences():
    return get_service().state_manager.load_preferences().model_dump()

@app.put("/preferences", dependencies=[Depends(get_token)])
def put_preferences(prefs: Preferences):
    get_service().state_manager.save_preferences(prefs)
    return prefs.model_dump()
