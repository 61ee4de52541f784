"""FastAPI application entry point for the LeoForge stream client.

This module builds the client context, opens the event stream, and serves
the local UI surface that starts generations and relays their events.

Usage:
    uvicorn main:app --reload --port 3001
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import router, websocket_router
from api.routes import set_client_context
from config import settings
from container import build_client_context
from transport import TransportError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events.

    Builds the client context and, if configured, opens the event stream.
    A failed initial connection is not fatal: the reconnect policy keeps
    trying in the background.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    logger.info(
        "application_starting",
        ui_port=settings.ui_port,
        server_base_url=settings.server_base_url,
        log_level=settings.log_level,
    )

    context = build_client_context(settings)
    set_client_context(context)
    app.state.client_context = context

    if settings.connect_on_startup:
        try:
            await context.connection.connect()
        except TransportError as e:
            logger.warning("initial_connect_failed", error=str(e))

    logger.info("application_started", connected=context.connection.is_connected)

    yield

    logger.info("application_shutting_down")
    await context.aclose()
    set_client_context(None)
    logger.info("application_shutdown_complete")


app = FastAPI(
    title="LeoForge Stream Client",
    description="Local UI surface for starting code generations on a LeoForge "
    "server and following their event stream in real time.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router, tags=["generation"])
app.include_router(websocket_router, tags=["websocket"])


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint pointing at the documentation."""
    return {
        "message": "LeoForge Stream Client",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.ui_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
