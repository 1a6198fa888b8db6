from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio

from app.core.config import settings
from app.core.database import init_db, close_db, session_scope
from app.core.exceptions import CampusPerksError, error_response
from app.core.logging_config import logger
from app.core.middleware import RequestLoggingMiddleware
from app.api.v1.router import api_router
from app.services.connection_registry import ConnectionRegistry
from app.services.fanout import EventFanout
from app.services.notification_service import NotificationService
from app.services.realtime_gateway import RealtimeGateway
from app.services.rooms import topology


async def validate_critical_config():
    """Validate critical configuration at startup - fail fast if missing"""
    errors = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not set")

    if not settings.JWT_SECRET_KEY or settings.JWT_SECRET_KEY == "CHANGE_ME":
        errors.append("JWT_SECRET_KEY is not set or using default value")

    if errors:
        for err in errors:
            logger.critical(f"[Startup] CRITICAL: {err}")
        raise RuntimeError(f"Missing critical configuration: {', '.join(errors)}")

    if not settings.STORAGE_ENDPOINT_URL and not settings.AWS_ACCESS_KEY_ID:
        logger.warning("[Startup] WARNING: no storage credentials - document uploads will fail")

    logger.info("[Startup] Critical configuration validated")


async def purge_expired_notifications_loop():
    """Delete expired notifications every NOTIFICATION_PURGE_INTERVAL_MINUTES"""
    interval = settings.NOTIFICATION_PURGE_INTERVAL_MINUTES * 60
    while True:
        try:
            async with session_scope() as session:
                await NotificationService(session).purge_expired()
        except Exception as e:
            logger.log_error_with_context(e, context="notification purge")
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"API Version: {settings.API_VERSION}")
    logger.info("=" * 60)

    await validate_critical_config()
    await init_db()
    logger.info("[Startup] Database tables ready")

    purge_task = asyncio.create_task(purge_expired_notifications_loop())
    logger.info(
        f"Started notification purge task "
        f"(every {settings.NOTIFICATION_PURGE_INTERVAL_MINUTES}min, "
        f"retention {settings.NOTIFICATION_RETENTION_DAYS}d)"
    )

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")
    purge_task.cancel()
    try:
        await purge_task
    except asyncio.CancelledError:
        pass

    closed = app.state.connection_registry.close_all()
    logger.info(f"Closed {closed} realtime connection(s)")

    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Student discount platform with realtime notifications for students, vendors and admins",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False  # Prevent 307 redirects that break CORS
)

# Realtime layer: one registry per process
app.state.connection_registry = ConnectionRegistry()
app.state.event_fanout = EventFanout(app.state.connection_registry, topology)
app.state.realtime_gateway = RealtimeGateway(app.state.connection_registry, app.state.event_fanout)

# Add middleware (order matters - last added runs first)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# Exception handlers
@app.exception_handler(CampusPerksError)
async def campusperks_exception_handler(request: Request, exc: CampusPerksError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_response(exc))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": errors[0]["message"] if errors else "Invalid request",
                "details": {"errors": errors},
            }
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": str(exc) if settings.DEBUG else "An error occurred",
            }
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "realtime_connections": app.state.connection_registry.counts()["total"],
    }


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


# Include API router
app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )
