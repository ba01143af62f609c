"""Main FastAPI application"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
import logging
import traceback
import time
import uuid

from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from audit_retention.config import settings
from audit_retention.core.clock import utcnow
from audit_retention.core.database import check_connection, init_db, SessionLocal
from audit_retention.core.exceptions import AuditRetentionError
from audit_retention.core.logging import configure_logging
from audit_retention.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, WORKER_UP_GAUGE
from audit_retention.schemas.response import ErrorResponse
from audit_retention.api.v1 import audit_logs, retention
from audit_retention.services.retention_policy_store import RetentionPolicyStore
from audit_retention.services.retention_worker import retention_worker

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None
)

# GZip compression for large responses
app.add_middleware(GZipMiddleware, minimum_size=500)


# Request id + timing middleware
@app.middleware("http")
async def add_headers_and_timing(request: Request, call_next):
    """Tag each request with an id and record its latency"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Request-ID"] = request_id

    REQUEST_COUNT.labels(request.method, request.url.path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, request.url.path).observe(duration)

    if duration > 1.0:
        logger.warning(
            "Slow request: %s %s took %.2fs request_id=%s",
            request.method,
            request.url.path,
            duration,
            request_id,
        )

    return response


def _error_body(request: Request, error: str, details=None) -> dict:
    return ErrorResponse(error=error, details=details, path=request.url.path).model_dump(exclude_none=True)


# Exception handlers
@app.exception_handler(AuditRetentionError)
async def retention_exception_handler(request: Request, exc: AuditRetentionError):
    """Handle retention and archival errors"""
    logger.error(
        f"Retention error: {exc.message}",
        extra={
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(
        f"Validation error: {errors}",
        extra={"path": request.url.path, "method": request.method}
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(request, "Validation failed", errors),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Handle database errors"""
    logger.error(
        f"Database error: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc()
        }
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "A database error occurred. Please try again later."),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.critical(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc()
        }
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "An unexpected error occurred."),
    )


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    configure_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    db = SessionLocal()
    try:
        if RetentionPolicyStore(db).seed_defaults():
            logger.info("Seeded default retention policy")
    except (SQLAlchemyError, AuditRetentionError) as e:
        logger.error(f"Failed to seed retention policy: {e}")
    finally:
        db.close()

    if settings.RUN_EMBEDDED_WORKER:
        retention_worker.start()
        WORKER_UP_GAUGE.set(1)


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    if retention_worker.is_running():
        retention_worker.stop()
    WORKER_UP_GAUGE.set(0)
    logger.info(f"Shutting down {settings.APP_NAME}")


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    db_error = check_connection()
    db_ok = db_error is None

    worker_status = retention_worker.status()
    WORKER_UP_GAUGE.set(1 if worker_status["running"] else 0)

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat(),
        "readiness": {
            "database": {"ok": db_ok, "error": db_error},
            "worker": {
                "running": worker_status["running"],
                "last_heartbeat": worker_status["last_heartbeat"],
                "run_count": worker_status["run_count"],
            },
        },
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/api/docs" if settings.DEBUG else "disabled"
    }


# Include routers
app.include_router(retention.router, prefix="/api/v1/retention", tags=["Retention"])
app.include_router(audit_logs.router, prefix="/api/v1/audit-logs", tags=["Audit Logs"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "audit_retention.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS
    )
