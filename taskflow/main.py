"""FastAPI application entry point."""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from .config import settings
from .database import async_session_maker, engine
from .routers import notifications_router, project_messages_router, tasks_router
from .services.gateway import PersistenceGateway
from .websocket.hub import RealtimeHub

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    logger.info("Building persistence gateway and realtime hub...")
    gateway = PersistenceGateway(async_session_maker)
    app.state.gateway = gateway
    app.state.hub = RealtimeHub(gateway, settings)

    if await gateway.ping():
        logger.info("Database reachable")
    else:
        logger.warning("Database not reachable at startup; requests will retry lazily")

    yield

    # Shutdown
    logger.info("Closing WebSocket connections...")
    await app.state.hub.shutdown()
    await engine.dispose()
    logger.info("Database engine disposed")


# Create FastAPI application
app = FastAPI(
    title="Taskflow Realtime API",
    description="Real-time collaboration gateway for projects, tasks and notifications",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Database pool exhaustion handler - return 503 so clients can retry
@app.exception_handler(SQLAlchemyTimeoutError)
async def db_pool_exhausted_handler(request: Request, exc: SQLAlchemyTimeoutError):
    """Handle database connection pool exhaustion with 503 Service Unavailable."""
    logger.warning(
        f"Database pool exhausted on {request.method} {request.url}: {exc}"
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "Service temporarily unavailable. Please retry.",
            "retry_after": 5,
        },
        headers={"Retry-After": "5"},
    )


# Global exception handler to log errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log all unhandled exceptions with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url}:")
    logger.error(f"Exception type: {type(exc).__name__}")
    logger.error(f"Exception message: {str(exc)}")
    logger.error(f"Traceback:\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include API routers
app.include_router(notifications_router)
app.include_router(project_messages_router)
app.include_router(tasks_router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "service": "Taskflow Realtime API",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    hub: RealtimeHub = request.app.state.hub
    database_ok = await hub.gateway.ping()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": "ok" if database_ok else "unreachable",
        "websocket": {
            "connections": hub.manager.total_connections,
            "rooms": hub.manager.total_rooms,
            "online_users": len(hub.presence),
        },
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time collaboration.

    Authentication is done via the ``token`` query parameter, since browser
    clients cannot set headers on the handshake; an ``Authorization: Bearer``
    header is accepted too.

    Usage:
        ws://localhost:8000/ws?token=<jwt_token>
    """
    hub: RealtimeHub = websocket.app.state.hub
    await hub.serve(websocket)
