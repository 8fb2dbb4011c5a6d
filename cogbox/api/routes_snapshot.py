from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from cogbox.api.deps import get_pipeline, get_session
from cogbox.data.models import Sample
from cogbox.pipeline.engine import InferencePipeline
from cogbox.pipeline.models import Snapshot
from cogbox.playback.runner import PlaybackSession

router = APIRouter()


@router.get("/ping")
def ping():
    return {"message": "snapshot router active"}


@router.get("/{owner_id}", response_model=Snapshot)
async def current_snapshot(session: PlaybackSession = Depends(get_session)):
    snapshot = session.snapshot()
    if snapshot is None:
        raise HTTPException(
            status_code=422,
            detail=f"No snapshot available for owner {session.owner_id} at cursor {session.controller.cursor}",
        )
    return snapshot


@router.get("/{owner_id}/at/{cursor}", response_model=Snapshot)
async def snapshot_at(owner_id: str, cursor: int, pipeline: InferencePipeline = Depends(get_pipeline)):
    return pipeline.get_snapshot(owner_id, cursor)


@router.get("/{owner_id}/history", response_model=List[Sample])
async def history(
    request: Request,
    window: Optional[int] = Query(None, ge=1),
    session: PlaybackSession = Depends(get_session),
    pipeline: InferencePipeline = Depends(get_pipeline),
):
    if window is None:
        window = request.app.state.settings.history_window
    return pipeline.history(session.owner_id, session.controller.cursor, window)
