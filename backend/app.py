"""
AquaOps Backend Application

FastAPI application exposing the dashboard engine to the presentation layer.
"""

import os
import sys
from contextlib import asynccontextmanager

import log_config  # noqa: F401
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

# Add project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import api
from api import router as api_router

from core.aquaops.dashboard import Dashboard
from core.aquaops.settings import load_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for startup/shutdown."""
    # Startup
    logger.info("AquaOps starting")

    settings = load_settings()
    dashboard = Dashboard(settings)
    await dashboard.start()
    logger.info(f"🐟 Monitoring {len(dashboard.list_units())} unit(s)")

    # Make dashboard available to API
    api.dashboard = dashboard

    yield

    # Shutdown
    logger.info("AquaOps shutting down")
    await dashboard.stop()
    api.dashboard = None


# Create FastAPI application
app = FastAPI(
    title="AquaOps API",
    description="Live operations dashboard for aquaculture units",
    version=api.APP_VERSION,
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions gracefully."""
    import traceback

    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request path: {request.url.path}")
    logger.error(f"Stack trace:\n{tb_str}")

    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "message": "Internal server error",
        },
    )


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("AQUAOPS_CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


# For development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
