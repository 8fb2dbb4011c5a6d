import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cogbox.api.routes_playback import router as playback_router
from cogbox.api.routes_snapshot import router as snapshot_router
from cogbox.config import Settings, configure_logging
from cogbox.errors import DataError, OwnerNotFound
from cogbox.pipeline.engine import InferencePipeline
from cogbox.playback.runner import PlaybackTicker, SessionManager
from cogbox.rationale.engine import rules_as_dict

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, pipeline: Optional[InferencePipeline] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[STARTUP] cogbox server starting")
        if app.state.pipeline is None:
            # Configuration errors are fatal: the server does not come up without a pipeline
            app.state.pipeline = InferencePipeline.build(settings)
            app.state.sessions = SessionManager(app.state.pipeline, settings)
        ticker = PlaybackTicker(app.state.sessions, period=settings.tick_period)
        app.state.ticker = ticker
        await ticker.start()

        yield

        logger.info("[SHUTDOWN] Stopping playback ticker")
        await ticker.stop()
        logger.info("[SHUTDOWN] Server stopped")

    app = FastAPI(title="cogbox API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.sessions = SessionManager(pipeline, settings) if pipeline is not None else None
    app.state.ticker = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(playback_router, prefix="/api/v1/playback", tags=["playback"])
    app.include_router(snapshot_router, prefix="/api/v1/snapshot", tags=["snapshot"])

    @app.exception_handler(OwnerNotFound)
    async def owner_not_found(request: Request, exc: OwnerNotFound):
        return JSONResponse(status_code=404, content={"ok": False, "error": f"Unknown owner: {exc.args[0]}"})

    @app.exception_handler(DataError)
    async def data_error(request: Request, exc: DataError):
        return JSONResponse(status_code=422, content={"ok": False, "error": str(exc)})

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    @app.get("/api/v1/owners")
    def list_owners(request: Request):
        pipeline = request.app.state.pipeline
        return [pipeline.owner_info(owner_id) for owner_id in pipeline.owners()]

    @app.get("/api/v1/model")
    def model_info(request: Request):
        return request.app.state.pipeline.classifier.describe()

    @app.get("/api/v1/rules")
    def rule_table(request: Request):
        return rules_as_dict(request.app.state.pipeline.rationale.rules)

    @app.websocket("/ws/{owner_id}")
    async def ws_snapshots(websocket: WebSocket, owner_id: str):
        """Pushes every snapshot the owner's session produces."""
        await websocket.accept()
        try:
            session = websocket.app.state.sessions.get(owner_id)
        except OwnerNotFound:
            await websocket.send_json({"type": "error", "error": f"Unknown owner: {owner_id}"})
            await websocket.close(code=1008)
            return

        queue = session.subscribe()
        logger.info(f"[WS] Client subscribed to {owner_id} ({session.subscriber_count} total)")
        # ends the stream when the client leaves, even while the session is idle
        receiver = asyncio.create_task(_wait_for_disconnect(websocket))
        getter = None
        try:
            await websocket.send_json({
                "type": "init",
                "info": jsonable_encoder(session.controller.info()),
            })
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
                if receiver in done:
                    receiver.result()
                    break
                await websocket.send_json({"type": "snapshot", "data": jsonable_encoder(getter.result())})
        except WebSocketDisconnect:
            pass
        finally:
            for task in (getter, receiver):
                if task is not None and not task.done():
                    task.cancel()
            session.unsubscribe(queue)
            logger.info(f"[WS] Client left {owner_id}")

    return app


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


_settings = Settings.from_env()
configure_logging(_settings.log_level)
app = create_app(_settings)
