"""
FastAPI application for the recap service.

Hosts the recap pipeline over HTTP with WebSocket stage updates.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recapper import __version__
from recapper.api import routes, stats_routes, websocket
from recapper.config import get_settings
from recapper.logging_config import setup_logging

# Configure logging before anything else
settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Logs startup info and releases the shared engine on shutdown.
    """
    logger.info("Starting Recap API")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Inbox directory: {settings.inbox_dir}")
    logger.info(f"Engine working storage: {settings.work_dir}")

    yield

    await routes.shutdown_orchestrator()
    logger.info("Shutting down Recap API")


app = FastAPI(
    title="Recap API",
    description="API for video recap generation with narration scripts",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router)
app.include_router(stats_routes.router)
app.include_router(websocket.router)


@app.get("/health")
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        Basic health status
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "recapper.main:app",
        host="0.0.0.0",
        port=8802,
        reload=True,
    )
