"""
Manuscript Hub - collaborative document session core.

FastAPI application entry point.
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from manuscript_hub.config import get_settings
from manuscript_hub.database import async_session_maker, init_db, close_db, ping_db
from manuscript_hub.api.v1 import router as api_v1_router
from manuscript_hub.api.middleware.request_id import RequestIdMiddleware
from manuscript_hub.engines.collaboration.maintenance import maintenance_loop
from manuscript_hub.engines.collaboration.presence import InMemoryPresenceStore, PresenceTracker
from manuscript_hub.kernel.errors import CollaborationError, Unauthenticated
from manuscript_hub.schemas.common import ErrorResponse, HealthResponse
from manuscript_hub.logging_config import configure_logging, get_logger

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    # Configure logging first
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    # Startup
    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    store = InMemoryPresenceStore()
    app.state.presence_store = store

    maintenance = None
    if settings.maintenance_interval_seconds > 0:
        tracker = PresenceTracker(store, ttl_seconds=settings.presence_ttl_seconds)
        maintenance = asyncio.create_task(
            maintenance_loop(tracker, async_session_maker, settings.maintenance_interval_seconds)
        )
        logger.info("Maintenance every %ss", settings.maintenance_interval_seconds)

    yield

    # Shutdown
    logger.info("Shutting down...")
    if maintenance is not None:
        maintenance.cancel()
        with suppress(asyncio.CancelledError):
            await maintenance
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.project_name,
    description="""
    Manuscript Hub - Collaborative Document Session Core

    ## Features

    - **Presence**: Heartbeat-based "who is viewing this manuscript"
    - **Invitations**: Invite by email, ORCID iD or account; accept/decline/expire
    - **Tracked Changes**: Propose, accept and reject redlines, one at a time or in bulk
    - **Notifications**: In-app notifications for invitation and change outcomes

    ## Invariants

    1. At most one collaborator row per (manuscript, person)
    2. Invitations and tracked changes leave PENDING exactly once
    3. Accepting an invitation is all-or-nothing
    4. All mutations logged before commit
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Middleware order: add_middleware stacks innermost-first, so LAST added = OUTERMOST.
app.add_middleware(RequestIdMiddleware)

# CORS last = outermost = wraps everything; every response gets CORS headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> dict:
    """Return CORS headers for error responses so browser receives them (500s often bypass CORS middleware)."""
    origin = request.headers.get("origin") or ""
    origins = settings.cors_origins or ["*"]
    allow_origin = origin if origin in origins else origins[0]
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "*",
        "Access-Control-Allow-Headers": "*",
    }


def _error_headers(request: Request) -> dict:
    headers = _cors_headers(request)
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
    return headers


@app.exception_handler(CollaborationError)
async def collaboration_error_handler(request: Request, exc: CollaborationError):
    """Render typed domain failures with their stable code."""
    headers = _error_headers(request)
    if isinstance(exc, Unauthenticated):
        headers["WWW-Authenticate"] = "Bearer"
    content = ErrorResponse(
        **exc.to_dict(),
        request_id=getattr(request.state, "request_id", None),
    ).body()
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request failed: %s", exc.code,
        extra={"path": request.url.path, "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Ensure 404/405 etc. responses have CORS headers."""
    headers = _error_headers(request)
    if exc.headers:
        headers.update(exc.headers)
    req_id = getattr(request.state, "request_id", None)
    content = ErrorResponse(
        detail=exc.detail,
        request_id=req_id if exc.status_code >= 500 else None,
    ).body()
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    content = ErrorResponse(
        detail="Validation error",
        code="invalid_payload",
        errors=errors,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=content.body(),
        headers=_error_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions. CORS headers added so browser does not hide 500 behind CORS error."""
    logger.exception("Unhandled exception: %s", exc)
    req_id = getattr(request.state, "request_id", None)
    detail = f"{type(exc).__name__}: {exc}" if settings.debug else "Internal server error"
    content = ErrorResponse(detail=detail, code="internal_error", request_id=req_id)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content.body(),
        headers=_error_headers(request),
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    if await ping_db():
        return HealthResponse(status="ok", version=settings.version, database="connected")
    return HealthResponse(status="degraded", version=settings.version, database="unavailable")


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": {
            "v1": settings.api_v1_prefix,
        },
    }


# Mount API v1 routes
app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "manuscript_hub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
