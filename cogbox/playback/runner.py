"""
Playback sessions and the periodic tick loop.

One PlaybackSession per owner: its own controller (cursor, speed, status)
plus the queues of whoever is watching it. The PlaybackTicker is the external
timer: every `period` seconds it ticks each session once, on the event loop,
so start/pause/reset requests are always applied between two ticks.
"""
import asyncio
import logging
from functools import partial
from typing import Dict, List, Optional

from cogbox.config import Settings
from cogbox.pipeline.engine import InferencePipeline
from cogbox.pipeline.models import Snapshot
from cogbox.playback.controller import PlaybackController

logger = logging.getLogger(__name__)


class PlaybackSession:
    def __init__(self, owner_id: str, pipeline: InferencePipeline, settings: Settings):
        self.owner_id = owner_id
        self.controller = PlaybackController(
            n_samples=pipeline.n_samples(owner_id),
            snapshot_source=partial(pipeline.get_snapshot, owner_id),
            duration_bound=settings.duration_bound,
            allowed_speeds=settings.allowed_speeds,
            speed=settings.default_speed,
            tick_period=settings.tick_period,
            owner_id=owner_id,
        )
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        # One slot: a newer snapshot replaces one the consumer has not read yet
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, snapshot: Snapshot) -> None:
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(snapshot)

    def tick(self) -> Optional[Snapshot]:
        snapshot = self.controller.tick()
        if snapshot is not None:
            self.publish(snapshot)
        return snapshot

    def snapshot(self) -> Optional[Snapshot]:
        return self.controller.snapshot()


class SessionManager:
    """Sessions keyed by owner id, created on first use and never shared across owners."""

    def __init__(self, pipeline: InferencePipeline, settings: Settings):
        self.pipeline = pipeline
        self.settings = settings
        self._sessions: Dict[str, PlaybackSession] = {}

    def get(self, owner_id: str) -> PlaybackSession:
        if owner_id not in self._sessions:
            # raises OwnerNotFound for unknown owners
            self.pipeline.series_for(owner_id)
            self._sessions[owner_id] = PlaybackSession(owner_id, self.pipeline, self.settings)
            logger.info(f"[SESSION] Created playback session for owner {owner_id}")
        return self._sessions[owner_id]

    def sessions(self) -> List[PlaybackSession]:
        return list(self._sessions.values())

    def tick_all(self) -> int:
        """Tick every session once. Returns how many produced a snapshot."""
        produced = 0
        for session in self.sessions():
            try:
                if session.tick() is not None:
                    produced += 1
            except Exception:
                logger.exception(f"[SESSION] Tick failed for owner {session.owner_id}")
        return produced


class PlaybackTicker:
    """Fixed-period timer driving SessionManager.tick_all on the event loop."""

    def __init__(self, sessions: SessionManager, period: float = 1.0):
        self.sessions = sessions
        self.period = period
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"[TICKER] Started, period {self.period}s")

    async def stop(self) -> None:
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[TICKER] Stopped")

    async def _loop(self) -> None:
        while self.running:
            await asyncio.sleep(self.period)
            self.sessions.tick_all()
