"""
FastAPI application — local Drift focus engine API.
Runs on http://127.0.0.1:8766 by default.

Singletons (store, engine host/client, notifier, pipeline, alarm) live on
app.state so that each call to create_app() produces a fully independent
instance with no shared module-level globals. This makes test isolation
straightforward.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..actions.notifications import Notifier
from ..config import Config, config as default_config
from ..errors import StorageError, TransportUnavailable
from ..inference.scoring import build_engine
from ..intervention.pipeline import FocusPipeline
from ..intervention.scheduler import Alarm
from ..storage import KeyValueStore
from ..telemetry.sensor import TabSensors
from ..transport.bridge import EngineClient, EngineHost
from ..transport.channel import Link

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(cfg: Optional[Config] = None, arm_alarm: bool = True) -> FastAPI:
    cfg = cfg or default_config

    # -----------------------------------------------------------------------
    # Lifespan: initialises and tears down all per-app state
    # -----------------------------------------------------------------------

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.config = cfg
        app.state.store = KeyValueStore(cfg.state_path)
        app.state.sensors = TabSensors(cfg.max_tab_sensors)

        link = Link()
        engine = build_engine(cfg.scorer, cfg.window_size, cfg.model_path)
        app.state.engine = engine
        app.state.engine_client = EngineClient(link, timeout_s=cfg.predict_timeout_s)
        app.state.engine_host = EngineHost(engine, link, autoload=False)
        # The client listens before the host can announce MODEL_READY
        await app.state.engine_client.start()
        await app.state.engine_host.start()

        app.state.notifier = Notifier(desktop=cfg.desktop_notifications, break_url=cfg.break_url)
        app.state.pipeline = FocusPipeline(
            app.state.store,
            app.state.engine_client,
            app.state.notifier,
            window_size=cfg.window_size,
            history_capacity=cfg.max_history_entries,
        )
        await app.state.pipeline.start()

        app.state.alarm = Alarm(cfg.alarm_name, cfg.tick_seconds, app.state.pipeline.tick)
        if arm_alarm:
            app.state.alarm.start()

        yield

        await app.state.alarm.stop()
        await app.state.notifier.drain()
        await app.state.engine_client.stop()
        await app.state.engine_host.stop()

    # -----------------------------------------------------------------------
    # App factory
    # -----------------------------------------------------------------------

    app = FastAPI(
        title="Drift",
        description="Local focus inference engine: behavior signals in, break nudges out",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "null"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageError)
    async def storage_error(request: Request, exc: StorageError):
        logger.error("Storage failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": f"Storage unavailable: {exc}"})

    @app.exception_handler(TransportUnavailable)
    async def transport_error(request: Request, exc: TransportUnavailable):
        return JSONResponse(status_code=503, content={"detail": f"Scoring engine unavailable: {exc}"})

    from .routers import history, messages, settings, state, telemetry

    app.include_router(messages.router)
    app.include_router(telemetry.router)
    app.include_router(state.router)
    app.include_router(history.router)
    app.include_router(settings.router)

    @app.get("/health")
    def health(request: Request):
        engine = getattr(request.app.state, "engine", None)
        alarm = getattr(request.app.state, "alarm", None)
        return {
            "status": "ok",
            "version": VERSION,
            "scorer": engine.version if engine is not None and engine.is_ready else cfg.scorer,
            "engine": engine.state.value if engine is not None else "unknown",
            "alarm_armed": bool(alarm and alarm.armed),
        }

    return app


app = create_app()
