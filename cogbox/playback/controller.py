import logging
from typing import Any, Callable, Optional, Sequence, Tuple

from cogbox.errors import DataError
from cogbox.playback.models import PlaybackInfo, PlaybackState, PlaybackStatus

logger = logging.getLogger(__name__)

DEFAULT_SPEEDS = (1, 10, 50, 100)
FALLBACK_SPEED = 1


def _parse_speed(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def format_clock(seconds: float) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"


class PlaybackController:
    """
    Simulated-time cursor over one owner's series.

    idle --start--> running --pause--> paused --start--> running; reset from
    anywhere returns to idle at cursor 1. tick() only moves the cursor while
    running and loops back to 1 once the next step would pass the upper bound
    (the smaller of the series length and the duration bound).

    Every tick reads the snapshot at the new cursor before returning, so the
    features, prediction and rationale a caller sees always share one cursor.
    """

    def __init__(
        self,
        n_samples: int,
        snapshot_source: Optional[Callable[[int], Any]] = None,
        duration_bound: Optional[int] = None,
        allowed_speeds: Sequence[int] = DEFAULT_SPEEDS,
        speed: int = FALLBACK_SPEED,
        tick_period: float = 1.0,
        owner_id: str = "",
    ):
        if n_samples < 1:
            raise ValueError("Playback needs at least one sample")
        self.owner_id = owner_id
        self.snapshot_source = snapshot_source
        self.allowed_speeds = sorted(set(int(s) for s in allowed_speeds))
        self.tick_period = tick_period
        upper = n_samples if duration_bound is None else min(n_samples, duration_bound)
        self._bounds = (1, max(1, upper))

        self.cursor = 1
        self.status = PlaybackStatus.IDLE
        self.speed = FALLBACK_SPEED
        self.set_speed(speed)
        self.last_snapshot: Optional[Any] = None

    # ---- queries ----
    @property
    def running(self) -> bool:
        return self.status == PlaybackStatus.RUNNING

    def current_cursor(self) -> int:
        return self.cursor

    def bounds(self) -> Tuple[int, int]:
        return self._bounds

    @property
    def state(self) -> PlaybackState:
        return PlaybackState(
            cursor=self.cursor, running=self.running, speed=self.speed, bounds=self._bounds
        )

    def info(self) -> PlaybackInfo:
        upper = self._bounds[1]
        remaining_ticks = (upper - self.cursor) / self.speed
        return PlaybackInfo(
            owner_id=self.owner_id,
            status=self.status,
            cursor=self.cursor,
            speed=self.speed,
            allowed_speeds=self.allowed_speeds,
            bounds=self._bounds,
            clock=format_clock(self.cursor),
            progress_pct=round(self.cursor / upper * 100, 1),
            remaining=format_clock(remaining_ticks * self.tick_period),
        )

    # ---- transitions ----
    def start(self) -> None:
        if self.status != PlaybackStatus.RUNNING:
            self.status = PlaybackStatus.RUNNING
            logger.debug(f"[PLAYBACK] {self.owner_id} running at {self.speed}x from {self.cursor}")

    def pause(self) -> None:
        if self.status == PlaybackStatus.RUNNING:
            self.status = PlaybackStatus.PAUSED

    def reset(self) -> None:
        self.status = PlaybackStatus.IDLE
        self.cursor = 1

    def set_speed(self, value: Any) -> int:
        speed = _parse_speed(value)
        if speed not in self.allowed_speeds:
            logger.debug(f"[PLAYBACK] Speed {value!r} not allowed, using {FALLBACK_SPEED}x")
            speed = FALLBACK_SPEED
        self.speed = speed
        return self.speed

    def seek(self, cursor: Any) -> int:
        low, high = self._bounds
        try:
            target = int(cursor)
        except (TypeError, ValueError):
            target = low
        self.cursor = min(max(target, low), high)
        return self.cursor

    def tick(self) -> Optional[Any]:
        """Advance by `speed` while running and return the snapshot at the new cursor."""
        if self.status != PlaybackStatus.RUNNING:
            return None
        advanced = self.cursor + self.speed
        self.cursor = 1 if advanced > self._bounds[1] else advanced
        return self.snapshot()

    def snapshot(self) -> Optional[Any]:
        """Snapshot at the current cursor; on a data error the previous one is kept."""
        if self.snapshot_source is None:
            return None
        cursor = self.cursor
        try:
            self.last_snapshot = self.snapshot_source(cursor)
        except DataError as e:
            logger.warning(f"[PLAYBACK] {self.owner_id} cursor {cursor}: {e}; keeping previous snapshot")
        return self.last_snapshot
