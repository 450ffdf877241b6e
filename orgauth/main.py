"""
Main FastAPI Application

Entry point for the organization-scoped authentication service.
Configures middleware, routes, error handlers, and startup/shutdown events.
"""
import asyncio
from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from orgauth import __version__
from orgauth.api.endpoints import admin, auth, invitations, organizations, users
from orgauth.config import get_settings
from orgauth.core.exceptions import AppError, ServiceUnavailableError
from orgauth.database import engine, init_db
from orgauth.middleware.rate_limit import RateLimitMiddleware
from orgauth.tasks import periodic_cleanup
from orgauth.utils.logging import get_logger, setup_logging

settings = get_settings()

setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")

    # Create tables outside production (use migrations there)
    if not settings.is_production:
        init_db()

    cleanup_task = None
    if settings.CLEANUP_INTERVAL_SECONDS > 0:
        cleanup_task = asyncio.create_task(periodic_cleanup(settings.CLEANUP_INTERVAL_SECONDS))

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
    engine.dispose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    description="Session authentication, organization tenancy and role-based access control",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

# SECURITY: cookies are credentials, so origins must be listed explicitly
# (a wildcard origin can't be combined with allow_credentials)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add X-Process-Time header to track request duration."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


app.add_middleware(RateLimitMiddleware)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render every AppError as {"detail", "type"}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": exc.error_type},
        headers=exc.headers or {}
    )


@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: OperationalError):
    """
    Database unreachable or timing out.

    Reported as "unavailable" (retryable), never as an auth failure.
    """
    logger.error(
        f"Database operational error: {exc.orig}",
        extra={"reason": "database_unavailable"}
    )
    return await app_error_handler(request, ServiceUnavailableError())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all exception handler.

    SECURITY: Don't expose internal errors in production.
    Log full details but return generic error to client.
    """
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
        exc_info=True,
        extra={"reason": f"{request.method} {request.url.path}"}
    )

    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={
                "detail": str(exc),
                "type": type(exc).__name__,
            }
        )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "type": "internal_error"
        }
    )


# ============================================================================
# ROUTES
# ============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for load balancers."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": __version__
    }


app.include_router(auth.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(organizations.router, prefix="/api/v1")
app.include_router(invitations.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")

    uvicorn.run(
        "orgauth.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
