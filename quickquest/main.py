"""
QuickQuest Identity Service

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quickquest.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from quickquest.api.oauth import HTTP_TIMEOUT, build_oauth_clients
from quickquest.api.v1 import router as api_v1_router
from quickquest.config import get_settings
from quickquest.database import close_db, init_db
from quickquest.kernel.identity.errors import IdentityError
from quickquest.logging_config import configure_logging, get_logger
from quickquest.notifications import NotificationDispatcher, ResendNotifier, build_notifier
from quickquest.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)

# Seconds to wait for in-flight emails at shutdown
SHUTDOWN_DRAIN_TIMEOUT = 10.0


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
    if isinstance(app.state.notifications.notifier, ResendNotifier):
        logger.info("Email delivery via Resend")
    else:
        logger.warning("RESEND_API_KEY not set; emails will be logged, not sent")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.notifications.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)
    if isinstance(app.state.notifications.notifier, ResendNotifier):
        await app.state.notifications.notifier.aclose()
    await app.state.oauth_http.aclose()
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.project_name,
    description="""
    QuickQuest Identity Service

    Accounts, sessions and credential recovery for QuickQuest.

    ## Features

    - **Local accounts**: registration, login, email verification
    - **Recovery**: emailed single-use reset codes
    - **Social sign-in**: Google and GitHub, linked by verified email
    - **Sessions**: stateless bearer tokens
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.state.notifications = NotificationDispatcher(
    build_notifier(
        api_key=settings.resend_api_key,
        sender=settings.email_from,
        frontend_url=settings.frontend_url,
        timeout=settings.email_timeout_seconds,
    )
)
app.state.oauth_http = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
app.state.oauth_clients = build_oauth_clients(settings, app.state.oauth_http)


# Middleware order: add_middleware stacks innermost-first, so LAST added = OUTERMOST.
_cors_origins = [settings.frontend_url.rstrip("/")]
if settings.debug or settings.environment == "development":
    _cors_origins += [
        "http://localhost:3000",
        "http://localhost:5173",  # Vite default
        "http://127.0.0.1:3000",
    ]

app.add_middleware(RequestIdMiddleware)

# CORS last = outermost = wraps everything; every response gets CORS headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(dict.fromkeys(_cors_origins)),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(request: Request, status_code: int, content: dict, headers: Optional[dict] = None) -> JSONResponse:
    headers = dict(headers or {})
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers[REQUEST_ID_HEADER] = req_id
        if status_code >= 500:
            content["request_id"] = req_id
    return JSONResponse(status_code=status_code, content=content, headers=headers)


# Exception handlers
@app.exception_handler(IdentityError)
async def identity_exception_handler(request: Request, exc: IdentityError):
    """Render identity failures with their own status and a client-safe message."""
    headers = {}
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"
    return _error_response(request, exc.status_code, {"detail": exc.message}, headers)


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
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {"detail": "Validation error", "errors": errors},
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions without leaking internals."""
    logger.exception("Unhandled exception: %s", exc.__class__.__name__)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"detail": "Internal server error"},
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Check application health."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        database="connected",
        email_configured=bool(settings.resend_api_key),
        oauth_providers=sorted(p.value for p in request.app.state.oauth_clients),
    )


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
        "quickquest.main:app",
        host="0.0.0.0",
        port=5000,
        reload=settings.debug,
    )
