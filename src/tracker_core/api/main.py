"""Tracker Core FastAPI application."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import schemas
from ..config import get_settings
from ..errors import (
    InconsistentStateError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    TrackerError,
)
from .routers import lifecycle, memberships, permissions, users

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("tracker-core")

logger.info("Starting Tracker Core API")

# Create FastAPI app
app = FastAPI(
    title="Tracker Core API",
    description="Hierarchical authorization and archive lifecycle for projects, processes and tasks",
    version="1.0.0",
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


def _error_body(error: str, exc: TrackerError) -> dict:
    resource_id = getattr(exc, "resource_id", None)
    return schemas.ErrorResponse(
        error=error,
        message=str(exc),
        resource_kind=getattr(exc, "kind", None),
        resource_id=str(resource_id) if resource_id is not None else None,
    ).model_dump(exclude_none=True)


@app.exception_handler(NotFoundError)
async def _not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content=_error_body("not_found", exc))


@app.exception_handler(PermissionDeniedError)
async def _permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=403, content=_error_body("permission_denied", exc))


@app.exception_handler(PreconditionFailedError)
async def _precondition_failed_handler(request: Request, exc: PreconditionFailedError):
    return JSONResponse(status_code=409, content=_error_body("precondition_failed", exc))


@app.exception_handler(InconsistentStateError)
async def _inconsistent_state_handler(request: Request, exc: InconsistentStateError):
    logger.error(f"Inconsistent state on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content=_error_body("inconsistent_state", exc))


# Include all business logic routers with /api/v1 prefix
app.include_router(permissions.router, prefix="/api/v1/permissions")
app.include_router(memberships.router, prefix="/api/v1/memberships")
app.include_router(users.router, prefix="/api/v1/users")
app.include_router(lifecycle.tasks_router, prefix="/api/v1/tasks")
app.include_router(lifecycle.processes_router, prefix="/api/v1/processes")
app.include_router(lifecycle.projects_router, prefix="/api/v1/projects")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "Tracker Core API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
