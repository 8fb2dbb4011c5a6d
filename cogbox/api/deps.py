from fastapi import Depends, Request

from cogbox.pipeline.engine import InferencePipeline
from cogbox.playback.runner import PlaybackSession, SessionManager


async def get_pipeline(request: Request) -> InferencePipeline:
    return request.app.state.pipeline


async def get_sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


async def get_session(owner_id: str, sessions: SessionManager = Depends(get_sessions)) -> PlaybackSession:
    return sessions.get(owner_id)
