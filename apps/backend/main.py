"""
AssetLogix - API Service
========================
Document management and equipment maintenance tracking backend.
"""

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from config import get_settings
import sys
from logging_config import configure_logging, get_logger
from routers import (
    auth_router,
    collaboration_router,
    documents_router,
    equipment_router,
    folders_router,
    maintenance_router,
    project_equipment_router,
    projects_router,
    roles_router,
    system_router,
    uploads_router,
    users_router,
)
from database.migrations import apply_schema_patches
from database.session import dispose_engine, get_engine, get_session_factory, ping_database
from exceptions import AssetLogixBaseException, DatabaseConnectionError, MigrationError
from rate_limiter import RateLimitMiddleware
from schemas import HealthResponse
from services.auth_service import AuthService
from services import storage
import structlog
import uuid
import time
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
import metrics as app_metrics

VERSION = "1.0.0"

# Will be configured in startup
logger = get_logger(__name__)

settings = get_settings()

app = FastAPI(
    title="AssetLogix",
    description="Document management and equipment maintenance tracking",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Request Correlation Middleware
# =============================================================================

class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject request ID into all logs for request tracing."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record request metrics for observability."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time

        # Label by route template so ids do not explode cardinality
        endpoint = app_metrics.route_template(
            request.url.path, request.scope.get("path_params") or {}
        )

        app_metrics.http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()

        app_metrics.http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(duration)

        return response


app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=settings.rate_limit_per_minute,
    burst_size=settings.rate_limit_burst,
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)

# Register routers
app.include_router(auth_router, prefix="/api", tags=["auth"])
app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(roles_router, prefix="/api/roles", tags=["roles"])
app.include_router(folders_router, prefix="/api/folders", tags=["folders"])
app.include_router(documents_router, prefix="/api", tags=["documents"])
app.include_router(equipment_router, prefix="/api", tags=["equipment"])
app.include_router(maintenance_router, prefix="/api", tags=["maintenance"])
app.include_router(projects_router, prefix="/api/projects", tags=["projects"])
app.include_router(project_equipment_router, prefix="/api/project-equipment", tags=["project-equipment"])
app.include_router(collaboration_router, prefix="/api", tags=["collaboration"])
app.include_router(uploads_router, prefix="/api", tags=["uploads"])
app.include_router(system_router, prefix="/api/system", tags=["system"])

# Uploaded files are served as-is; the directory is created at startup
app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(AssetLogixBaseException)
async def assetlogix_exception_handler(request: Request, exc: AssetLogixBaseException):
    """Handle all AssetLogix exceptions with structured responses."""
    if exc.status_code >= 500:
        logger.error(
            f"AssetLogix exception: {exc.message}",
            context=exc.context,
            error_type=exc.__class__.__name__,
        )
    else:
        logger.info(
            f"Request rejected: {exc.message}",
            status_code=exc.status_code,
            error_type=exc.__class__.__name__,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.to_dict(),
            "path": str(request.url.path),
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected exceptions."""
    logger.exception(
        f"Unexpected error: {str(exc)}",
        path=str(request.url.path),
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "error_type": "InternalServerError",
                "message": "An unexpected error occurred",
                "path": str(request.url.path),
            }
        }
    )


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint for container orchestration.

    Returns 200 when the database answers, 503 otherwise.
    """
    services = {}

    try:
        await ping_database()
        services["database"] = "healthy"
        app_metrics.database_is_healthy.set(1)
    except DatabaseConnectionError as e:
        logger.warning("Database health check failed", error=str(e.original_error or e))
        services["database"] = "unhealthy"
        app_metrics.database_is_healthy.set(0)

    overall_healthy = services["database"] == "healthy"

    response = HealthResponse(
        status="healthy" if overall_healthy else "degraded",
        version=VERSION,
        services=services
    )

    if not overall_healthy:
        raise HTTPException(status_code=503, detail=response.model_dump())

    return response


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "AssetLogix",
        "version": VERSION,
        "status": "operational",
        "docs": "/docs",
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# =============================================================================
# Lifecycle
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Prepare storage and the schema, then bootstrap the administrator."""
    settings = get_settings()
    configure_logging(environment=settings.environment, log_level=settings.log_level)

    logger.info(
        "Starting backend",
        environment=settings.environment,
        database=settings.database_url.split("@")[-1],
    )

    upload_root = storage.ensure_upload_dirs()
    logger.info(f"Upload directory ensured: {upload_root}")

    try:
        await apply_schema_patches(get_engine())
    except MigrationError as e:
        logger.error("Schema patching failed", error=e.message, step=e.context.get("step"))
        print(f"❌ Schema patching failed: {e.message}", file=sys.stderr)
        raise

    async with get_session_factory()() as session:
        auth = AuthService.from_session(session)
        await auth.purge_expired_sessions()

        if settings.admin_username and settings.admin_password:
            await auth.ensure_admin(
                settings.admin_username,
                settings.admin_password,
                settings.admin_email,
            )
        await session.commit()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup resources on shutdown."""
    logger.info("Shutting down backend")
    await dispose_engine()
