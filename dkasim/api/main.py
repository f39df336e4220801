"""
FastAPI main application for the DKA simulator backend.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dkasim.core.config import Config
from dkasim.core.event_bus import EventBus
from dkasim.core.exceptions import NotFoundError
from dkasim.data import seed_data
from dkasim.engine.simulation_engine import get_simulation_engine
from dkasim.api.routes import config as config_routes
from dkasim.api.routes import sessions as session_routes
from dkasim.api.routes import simulation as simulation_routes
from dkasim.api.websocket import manager, router as ws_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting DKA simulator backend...")

    engine = get_simulation_engine()
    if engine.repository.get_latest_config() is None:
        seed_data(engine.repository)

    if isinstance(engine.publisher, EventBus):
        manager.attach(engine.publisher)

    logger.info("DKA simulator backend started successfully")

    yield

    # Shutdown
    logger.info("Shutting down DKA simulator backend...")
    engine.shutdown()
    manager.detach()
    logger.info("Backend shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="DKA Simulator API",
    description="Multiplayer obstetric DKA training simulator",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# ========================
# Health
# ========================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "DKA Simulator API",
        "version": "1.0.0",
        "timestamp": datetime.now().isoformat()
    }


@app.get("/api/health")
async def health_check():
    """Detailed health check."""
    engine = get_simulation_engine()
    return {
        "status": "healthy",
        "components": {
            "state": engine.repository.get_state_summary()
            if hasattr(engine.repository, "get_state_summary") else {},
            "websocket_connections": manager.connection_count(),
            "event_subscribers": engine.publisher.get_subscriber_count()
            if isinstance(engine.publisher, EventBus) else 0
        },
        "config": {
            "debug": Config.DEBUG,
            "tick_interval_ms": engine.settings.tick_interval_ms
        }
    }


# ========================
# Routers
# ========================

app.include_router(config_routes.router, prefix="/api/config", tags=["config"])
app.include_router(session_routes.router, prefix="/api/sessions", tags=["sessions"])
app.include_router(simulation_routes.router, prefix="/api/sessions", tags=["simulation"])
app.include_router(ws_router)
