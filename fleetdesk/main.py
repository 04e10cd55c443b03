"""
Fleetdesk - Main Application
FastAPI application running the reservation lifecycle: expiration sweeps,
realtime cache invalidation and the reservations API
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

# Local imports
from .config import settings
from .database import DatabasePool, PostgresReservationStore
from .cache import CacheManager, CacheInvalidator
from .sweeper import ExpirationSweeper
from .background_tasks import BackgroundTaskManager
from .realtime import RealtimeListener
from .logging_config import configure_logging
from .models import HealthStatus
from .exceptions import FleetdeskException
from .utils import utcnow

# Routers
from .routers import expiration_router, metrics_router, reservations_router

logger = logging.getLogger(__name__)

# ============================================================
# Application Lifecycle Management
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup/shutdown)
    Initializes all required services and cleans up on shutdown
    """
    configure_logging(settings.log_level, settings.json_logs)
    logger.info(f">> Starting {settings.app_name} v{settings.app_version} ({settings.environment})")

    # Initialize database pool
    db_pool = DatabasePool()
    await db_pool.initialize()
    app.state.db_pool = db_pool
    app.state.store = PostgresReservationStore(db_pool)
    logger.info("[OK] Database pool initialized")

    # Initialize query cache
    cache = CacheManager.from_url(settings.redis_url, default_ttl=settings.cache_ttl_seconds)
    try:
        await cache.ping()
        logger.info("[OK] Redis cache initialized")
    except Exception as e:
        logger.warning(f"Redis unavailable, serving uncached reads: {e}")
    app.state.cache = cache
    app.state.cache_invalidator = CacheInvalidator(cache)

    # Expiration sweeper, shared by the interval task and the scheduled endpoint
    app.state.sweeper = ExpirationSweeper(app.state.store, app.state.cache_invalidator)

    if settings.sweeper_enabled:
        task_manager = BackgroundTaskManager(app.state.sweeper, interval_seconds=settings.sweep_interval_seconds)
        await task_manager.start()
        app.state.task_manager = task_manager
        logger.info("[OK] Background task manager started")
    else:
        logger.info("Interval sweep disabled, relying on the scheduled endpoint")

    if settings.realtime_enabled:
        listener = RealtimeListener(db_pool.dsn, channel=settings.realtime_channel)
        listener.subscribe(app.state.cache_invalidator.handle_change)
        try:
            await listener.start()
            app.state.realtime_listener = listener
            logger.info("[OK] Realtime listener subscribed")
        except Exception as e:
            # Cached entries still expire through their TTL
            logger.error(f"Realtime listener failed to start: {e}")

    logger.info(f">> {settings.app_name} v{settings.app_version} is ready")

    yield

    # Shutdown: cleanup resources
    logger.info(">> Shutting down application...")

    if hasattr(app.state, 'task_manager'):
        await app.state.task_manager.stop()
        logger.info("[OK] Background tasks stopped")

    if hasattr(app.state, 'realtime_listener'):
        await app.state.realtime_listener.stop()
        logger.info("[OK] Realtime listener stopped")

    if hasattr(app.state, 'cache'):
        await app.state.cache.close()
        logger.info("[OK] Redis cache closed")

    if hasattr(app.state, 'db_pool'):
        await app.state.db_pool.close()
        logger.info("[OK] Database pool closed")

    logger.info(">> Shutdown complete")

# ============================================================
# FastAPI Application
# ============================================================

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Car rental reservation lifecycle: state registry, expiration and cache invalidation",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================
# API Routers
# ============================================================

app.include_router(reservations_router)
app.include_router(expiration_router)

# Observability endpoints
app.include_router(metrics_router)

# ============================================================
# Exception Handlers
# ============================================================

@app.exception_handler(FleetdeskException)
async def fleetdesk_exception_handler(request: Request, exc: FleetdeskException):
    """Handle application exceptions with their own status code"""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors"""
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": exc.errors()
        }
    )

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_SERVER_ERROR",
            "message": "An unexpected error occurred"
        }
    )

# ============================================================
# Health Checks
# ============================================================

@app.get("/health", response_model=HealthStatus, tags=["System"])
async def health_check(request: Request):
    """
    Health of the database, the cache, the sweeper and the realtime feed
    """
    checks = {}
    stats = {}
    overall_status = "healthy"

    db_pool = getattr(request.app.state, "db_pool", None)
    if db_pool is not None:
        try:
            await db_pool.ping()
            stats["database"] = db_pool.get_stats()
            checks["database"] = "healthy"
        except Exception as e:
            checks["database"] = f"unhealthy: {e}"
            overall_status = "degraded"

    cache = getattr(request.app.state, "cache", None)
    if cache is not None:
        try:
            await cache.ping()
            stats["cache"] = {"hit_rate": cache.hit_rate}
            checks["redis"] = "healthy"
        except Exception as e:
            checks["redis"] = f"unhealthy: {e}"
            overall_status = "degraded"

    task_manager = getattr(request.app.state, "task_manager", None)
    checks["sweeper"] = "running" if task_manager and task_manager.running else "scheduled_only"

    sweeper = getattr(request.app.state, "sweeper", None)
    if sweeper is not None and sweeper.last_result is not None:
        last = sweeper.last_result
        stats["last_sweep"] = {
            "trigger": last.trigger.value,
            "started_at": last.started_at.isoformat(),
            "cancelled": last.cancelled,
            "failed": len(last.failed),
        }

    listener = getattr(request.app.state, "realtime_listener", None)
    if listener is not None:
        checks["realtime"] = "connected" if listener.connected else "disconnected"
        if not listener.connected:
            overall_status = "degraded"

    return HealthStatus(
        status=overall_status,
        version=settings.app_version,
        timestamp=utcnow(),
        checks=checks,
        stats=stats
    )

# ============================================================
# Main Entry Point (for debugging)
# ============================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fleetdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
