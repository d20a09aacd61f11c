"""
Main FastAPI application factory.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .dependencies import get_logger, get_supabase_client, clear_service_cache
from .models import ErrorResponse
from .routes import (
    analytics, availability, booking_ledger, bookings, conflicts, email_imports, expenses,
    guests, health, ical, manual_updates, ota_platforms, properties,
)
from .security.jwt import verify_token
from ..utils.errors import VoyageurError

ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
    "NOT_FOUND": 404,
    "RATE_LIMITED": 429,
    "AI_PROVIDER_ERROR": 502,
}


def is_open_path(path: str, method: str) -> bool:
    """Paths served without a bearer token."""
    if method == "OPTIONS" or path == "/":
        return True
    if path.endswith(".ics"):
        return True
    open_prefixes = (
        f"{settings.api_prefix}/{settings.api_version}/health",
        f"{settings.api_prefix}/docs",
        f"{settings.api_prefix}/redoc",
        f"{settings.api_prefix}/openapi.json",
    )
    return path.startswith(open_prefixes)


def error_body(message: str, error_code: str, details=None) -> dict:
    return ErrorResponse(
        success=False,
        message=message,
        error_code=error_code,
        details=details,
    ).model_dump(mode="json")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger = get_logger()
    logger.info(
        "Starting FastAPI application",
        environment=settings.environment,
        api_version=settings.api_version,
    )
    get_supabase_client()

    yield

    logger.info("Shutting down FastAPI application")
    clear_service_cache()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(VoyageurError)
    async def domain_exception_handler(request: Request, exc: VoyageurError):
        """Render domain errors with the same detail shape as HTTPException."""
        status_code = ERROR_STATUS.get(exc.error_code, 500)
        get_logger().warning(
            "Request failed",
            path=request.url.path,
            error_code=exc.error_code,
            error=exc.message,
        )
        return JSONResponse(
            status_code=status_code,
            content={"detail": {"message": exc.message, "error_code": exc.error_code, "details": exc.details}},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        get_logger().error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", "INTERNAL_ERROR", {"error": str(exc)}),
        )

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        if not settings.auth_enabled or is_open_path(request.url.path, request.method):
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return JSONResponse(status_code=401, content=error_body("Unauthorized", "UNAUTHORIZED"))
        token = auth_header.split(" ", 1)[1]
        try:
            payload = verify_token(token, settings.jwt_secret)
        except ValueError as e:
            return JSONResponse(
                status_code=401,
                content=error_body("Invalid token", "UNAUTHORIZED", {"error": str(e)}),
            )
        request.state.user_id = payload.get("sub")
        request.state.user_email = payload.get("email")
        return await call_next(request)

    for module in (
        health, bookings, properties, expenses, analytics, ical,
        conflicts, ota_platforms, availability, guests, email_imports,
        booking_ledger, manual_updates,
    ):
        app.include_router(module.router, prefix=f"{settings.api_prefix}/{settings.api_version}")

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "message": "Voyageur Nest API is running",
            "version": settings.app_version,
            "environment": settings.environment,
            "docs": f"{settings.api_prefix}/docs"
        }

    return app
