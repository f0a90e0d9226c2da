"""
TrafficWatch - Application Entry Point.

Starts the FastAPI application exposing the detection engine through
REST + WebSocket endpoints.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trafficwatch.api.routes import router as api_router
from trafficwatch.api.websocket import router as ws_router
from trafficwatch.config import settings
from trafficwatch.monitor import monitor
from trafficwatch.storage.database import database
from trafficwatch.storage.redis_client import redis_manager

logger = logging.getLogger("trafficwatch")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup / shutdown lifecycle."""
    # ── Startup ──────────────────────────────────────────
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        force=True,
    )
    logger.info("TrafficWatch v%s starting", "0.1.0")

    # Redis only carries blocklist metadata; run without it if unavailable
    try:
        await redis_manager.connect()
    except Exception as exc:
        logger.warning(
            "Redis unavailable (%s), blocked sources will not be published. "
            "Set TRAFFICWATCH_REDIS_URL to enable.",
            exc,
        )

    if monitor.db is not None:
        try:
            await monitor.db.init()
            await monitor.load_recent()
        except Exception:
            logger.exception("Database unavailable, continuing in memory only")
            monitor.db = None

    logger.info(
        "Detection engine ready (retention %.0fs, burst window %.0fs)",
        settings.history_retention_sec, settings.burst_window_sec,
    )
    logger.info("API docs: http://%s:%d/api/docs", settings.host, settings.port)

    yield

    # ── Shutdown ─────────────────────────────────────────
    await monitor.stop()
    await redis_manager.disconnect()
    await database.dispose()
    logger.info("TrafficWatch stopped.")


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        description="Traffic classification and attack-pattern detection engine",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # CORS (for dashboard)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")
    app.include_router(ws_router, prefix="/ws")

    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "trafficwatch.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    run()
