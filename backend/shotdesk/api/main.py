"""
FastAPI Main Application
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import structlog

from shotdesk.config.settings import settings
from shotdesk.services.errors import (
    AssignmentWriteError,
    CollaboratorError,
    DispatchError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
    ReviewWriteError,
    SequenceWriteError,
    ShotdeskError,
    TransientNetworkError,
    ValidationFailedError,
)


# Configure logging
logger = structlog.get_logger(__name__)


# Create FastAPI app
app = FastAPI(
    title="Shotdesk - Shot Review and Generation Coordinator",
    description="Shot review approvals, version activation and tracked AI image generation",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """
    Health check endpoint

    Returns:
        JSON response with service health status
    """
    return {
        "status": "healthy",
        "version": "1.0.0",
        "service": "shotdesk",
    }


# Exception handlers
def _serialize_validation_errors(errors):
    cleaned = []
    for err in errors:
        err_copy = err.copy()
        ctx = err_copy.get("ctx")
        if ctx:
            err_copy["ctx"] = {
                key: (str(value) if isinstance(value, Exception) else value)
                for key, value in ctx.items()
            }
        cleaned.append(err_copy)
    return cleaned


_ERROR_STATUS = [
    (ValidationFailedError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ReviewWriteError, status.HTTP_409_CONFLICT),
    (SequenceWriteError, status.HTTP_409_CONFLICT),
    (AssignmentWriteError, status.HTTP_409_CONFLICT),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (DispatchError, status.HTTP_502_BAD_GATEWAY),
    (CollaboratorError, status.HTTP_502_BAD_GATEWAY),
    (TransientNetworkError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: ShotdeskError) -> int:
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(ShotdeskError)
async def shotdesk_error_handler(request: Request, exc: ShotdeskError):
    """
    Map the service's error taxonomy to HTTP responses
    """
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "request_failed",
        path=request.url.path,
        code=exc.code,
        error=exc.message,
        status_code=status_code,
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "suggested_modifications": exc.suggested_modifications,
            }
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle request validation errors (400)
    """
    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=exc.errors(),
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": _serialize_validation_errors(exc.errors()),
            }
        },
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """
    Handle value errors (400)
    """
    logger.warning(
        "value_error",
        path=request.url.path,
        error=str(exc),
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "INVALID_VALUE",
                "message": str(exc),
            }
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Handle generic exceptions (500)
    """
    logger.error(
        "unexpected_error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


# Startup event
@app.on_event("startup")
async def startup_event():
    """
    Initialize application on startup
    """
    logger.info("application_starting", log_level=settings.log_level)

    from shotdesk.models import init_db

    init_db()

    logger.info("application_started")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on shutdown: stop every poller and drop late responses
    """
    logger.info("application_shutting_down")

    from shotdesk.api.dependencies import get_registry

    registry = app.dependency_overrides.get(get_registry, get_registry)()
    registry.close_all()


# Import routers
from shotdesk.api.routes import assignments, notifications, reviews, shots, workstation

# Register routers
app.include_router(workstation.router, prefix="/v1", tags=["workstation"])
app.include_router(reviews.router, prefix="/v1", tags=["reviews"])
app.include_router(shots.router, prefix="/v1", tags=["shots"])
app.include_router(notifications.router, prefix="/v1", tags=["notifications"])
app.include_router(assignments.router, prefix="/v1", tags=["assignments"])


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint

    Returns:
        JSON response with API information
    """
    return {
        "name": "Shotdesk API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
