from enum import Enum
from typing import List, Tuple

from pydantic import BaseModel


class PlaybackStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class PlaybackState(BaseModel):
    cursor: int = 1
    running: bool = False
    speed: int = 1
    bounds: Tuple[int, int] = (1, 1)


class PlaybackInfo(BaseModel):
    owner_id: str
    status: PlaybackStatus
    cursor: int
    speed: int
    allowed_speeds: List[int]
    bounds: Tuple[int, int]
    clock: str
    progress_pct: float
    remaining: str
