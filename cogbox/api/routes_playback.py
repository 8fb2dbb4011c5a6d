from fastapi import APIRouter, Depends, Query

from cogbox.api.deps import get_session
from cogbox.playback.models import PlaybackInfo
from cogbox.playback.runner import PlaybackSession

router = APIRouter()


@router.get("/ping")
def ping():
    return {"message": "playback router active"}


@router.get("/{owner_id}/info", response_model=PlaybackInfo)
async def get_info(session: PlaybackSession = Depends(get_session)):
    return session.controller.info()


@router.post("/{owner_id}/start", response_model=PlaybackInfo)
async def start(session: PlaybackSession = Depends(get_session)):
    session.controller.start()
    return session.controller.info()


@router.post("/{owner_id}/pause", response_model=PlaybackInfo)
async def pause(session: PlaybackSession = Depends(get_session)):
    session.controller.pause()
    return session.controller.info()


@router.post("/{owner_id}/reset", response_model=PlaybackInfo)
async def reset(session: PlaybackSession = Depends(get_session)):
    session.controller.reset()
    return session.controller.info()


@router.post("/{owner_id}/speed", response_model=PlaybackInfo)
async def set_speed(value: str = Query(...), session: PlaybackSession = Depends(get_session)):
    # Unsupported values fall back to 1x rather than failing the request
    session.controller.set_speed(value)
    return session.controller.info()


@router.post("/{owner_id}/seek", response_model=PlaybackInfo)
async def seek(cursor: int = Query(...), session: PlaybackSession = Depends(get_session)):
    session.controller.seek(cursor)
    return session.controller.info()
