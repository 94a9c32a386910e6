import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import MalformedBatchError, NotFoundError, ValidationError
from .logging_setup import setup_logging
from .routers import sync as sync_router
from .routers import tasks as tasks_router
from .settings import get_settings

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "tasks",
        "description": "Local CRUD on tasks held by the server of record. Deletes are soft (tombstones).",
    },
    {
        "name": "sync",
        "description": "Last-Writer-Wins reconciliation of offline client batches and server snapshots.",
    },
]

_settings = get_settings()
setup_logging(console_level=_settings.log_level, log_file=_settings.log_file)

app = FastAPI(
    title="Task Sync Backend",
    description="Server of record reconciling offline task lists with Last-Writer-Wins sync.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers for consistent JSON on validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": exc.errors(),
        },
    )


@app.exception_handler(ValidationError)
async def task_validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Same envelope as request validation, for input rejected by the record store."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": exc.message,
            "detail": exc.detail,
        },
    )


@app.exception_handler(NotFoundError)
async def not_found_exception_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Task not found"})


@app.exception_handler(MalformedBatchError)
async def malformed_batch_exception_handler(request: Request, exc: MalformedBatchError) -> JSONResponse:
    """A batch that is not an array is a caller error, rejected before any item runs."""
    logger.warning("Rejected sync batch: %s", exc)
    return JSONResponse(
        status_code=400,
        content={"error": "MalformedBatchError", "message": str(exc)},
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


# Include routers
app.include_router(tasks_router.router)
app.include_router(sync_router.router)
