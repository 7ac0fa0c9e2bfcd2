"""
Traffic Violation Review Service
Main FastAPI Application Entry Point

Initializes configuration, the record store, the review workflow and the
Socket.IO notifier, and mounts the REST routers.

Run with:
    uvicorn enforcement.main:sio_app --app-dir backend --reload
"""

import logging
import time
from contextlib import asynccontextmanager

import socketio
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from enforcement.config import get_config

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

STARTED_AT = time.time()

# Create Socket.IO server
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events - startup and shutdown"""
    print("=" * 60)
    print("[STARTUP] Traffic Violation Review Service")
    print("=" * 60)

    cfg = get_config()
    print("[OK] Configuration loaded")

    from enforcement.database import configure_database
    session_factory = configure_database(cfg.get_database_url(), cfg.get_store_timeout())
    print("[OK] Database initialized")

    from enforcement.challan import init_review_workflow
    init_review_workflow(session_factory, cfg)
    print(f"[OK] Review workflow initialized (timezone {cfg.get_timezone()})")

    from enforcement.websocket import WebSocketEmitter, WebSocketHandlers, set_emitter, set_handlers
    emitter = WebSocketEmitter(sio)
    set_emitter(emitter)
    set_handlers(WebSocketHandlers(sio, emitter))
    print("[OK] WebSocket notifications ready")

    print("=" * 60)
    print("[SERVER] Ready at http://localhost:8000")
    print("[DOCS] API docs at http://localhost:8000/docs")
    print("=" * 60)

    yield

    print("[SHUTDOWN] Shutting down...")

    from enforcement.database import get_engine
    engine = get_engine()
    if engine is not None:
        engine.dispose()
        print("[SHUTDOWN] Database connections closed")

    print("[SHUTDOWN] Complete")


# Create FastAPI application
app = FastAPI(
    title="Traffic Violation Review API",
    description="Violation review workflow and challan issuance",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().get_api_config().get("corsOrigins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Include API Routers
# ============================================

from enforcement.api import (  # noqa: E402
    violation_router,
    challan_router,
    stats_router,
    register_error_handlers,
)

# Violation routes: /api/violations, /api/jobs/{jobId}/detections
app.include_router(violation_router)

# Challan routes: /api/challans, /api/penalties
app.include_router(challan_router)

# Stats routes: /api/stats, /api/telemetry
app.include_router(stats_router)

register_error_handlers(app)


# ============================================
# Root Endpoints
# ============================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint - API information"""
    return {
        "name": "Traffic Violation Review Service",
        "version": "1.0.0",
        "status": "operational",
        "documentation": "/docs",
        "endpoints": {
            "violations": "/api/violations",
            "detections": "/api/jobs/{jobId}/detections",
            "challans": "/api/challans",
            "penalties": "/api/penalties",
            "stats": "/api/stats",
            "reports": "/api/stats/reports",
            "telemetry": "/api/telemetry",
        },
    }


@app.get("/health", tags=["health"])
@app.get("/api/health", tags=["health"])
async def health_check():
    """Health check endpoint"""
    from enforcement.websocket import get_handlers

    handlers = get_handlers()
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "uptimeSeconds": round(time.time() - STARTED_AT, 1),
        "websocketClients": handlers.get_client_count() if handlers else 0,
    }


# ============================================
# Create Socket.IO ASGI app
# ============================================

sio_app = socketio.ASGIApp(sio, app)
