"""
Main Application - FastAPI app factory and lifespan management
"""
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..errors import ClassificationError, StoreUnavailableError, ValidationError
from .config import AppConfig
from .limiter import build_limiter
from .routers import events, health
from .services.event_infra import build_context


logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def _error_response(status_code: int, message: str, headers: Optional[dict] = None, **extra) -> JSONResponse:
    """JSON error body; CORS headers included because some handlers run outside the middleware"""
    content = {"error": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers={**CORS_HEADERS, **(headers or {})})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    config: AppConfig = app.state.config
    logger.info("Starting speedwatch telemetry server...")

    # Store connections open lazily on first use
    ctx = build_context(config)
    app.state.telemetry = ctx

    yield

    logger.info("Shutting down...")
    try:
        await ctx.close()
    except Exception:
        logger.exception("Failed to close event store cleanly")


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = config or AppConfig.from_env()

    app = FastAPI(
        title="speedwatch telemetry API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config

    # Rate limiting
    limiter = build_limiter(config.rate_limit)
    app.state.limiter = limiter
    if limiter.enabled:
        app.add_middleware(SlowAPIMiddleware)

    @app.middleware("http")
    async def cors_and_content_type(request: Request, call_next):
        """Every response is JSON and readable from any origin"""
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        if "content-type" not in response.headers:
            response.headers["Content-Type"] = "application/json"
        return response

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        """Handle rate limit exceeded with JSON response."""
        return _error_response(429, "Rate limit exceeded", retry_after=exc.detail)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.debug("Rejected payload: %s", exc)
        return _error_response(400, str(exc))

    @app.exception_handler(ClassificationError)
    async def classification_error_handler(request: Request, exc: ClassificationError):
        logger.debug("Unclassifiable payload: %s", exc)
        return _error_response(400, str(exc))

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        # Only reached when memory fallback is disabled
        logger.warning("Event store unavailable: %s", exc)
        return _error_response(503, "Event store unavailable")

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI request validation errors with clean response."""
        errors = []
        for error in exc.errors():
            loc = " -> ".join(str(x) for x in error["loc"])
            errors.append(f"{loc}: {error['msg']}")
        logger.warning("Validation error: %s", errors)
        return _error_response(400, "; ".join(errors) or "Invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
        return _error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions with logging."""
        logger.exception("Unexpected error: %s", exc)
        extra = {}
        if config.debug:
            extra["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return _error_response(500, str(exc) or "Internal server error", **extra)

    app.include_router(health.router)
    app.include_router(events.router)

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    cfg = app.state.config
    logging.basicConfig(level=cfg.log_level)
    uvicorn.run(app, host=cfg.host, port=cfg.port)
