"""apihost FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from apihost import __version__
from apihost.config import get_settings
from apihost.db import close_db, init_db
from apihost.errors import ApiHostError, ValidationError
from apihost.services.http import http_client_manager

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()

    # Startup
    logger.info("apihost.startup", version=__version__)
    await init_db()

    # Initialize HTTP client with connection pooling
    await http_client_manager.startup(settings.sandbox)

    yield

    # Shutdown
    logger.info("apihost.shutdown")

    # Close HTTP client
    await http_client_manager.shutdown()

    await close_db()


def _request_validation_error(exc: RequestValidationError) -> ValidationError:
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    return ValidationError(
        first.get("msg", "Invalid request"),
        details={"field": ".".join(loc) or None, "reason": first.get("type", "invalid")},
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="apihost",
        description="Hosting, execution and marketplace for user-uploaded APIs",
        version=__version__,
        lifespan=lifespan,
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    # Error handlers
    @app.exception_handler(ApiHostError)
    async def apihost_error_handler(request: Request, exc: ApiHostError):
        """Handle apihost errors with consistent format."""
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = _request_validation_error(exc)
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(status_code=error.status_code, content=error.to_dict(request_id))

    # Health check
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    # Import and register API routers
    from apihost.api.invoke import router as invoke_router
    from apihost.api.v1 import router as v1_router

    app.include_router(v1_router, prefix="/v1")
    app.include_router(
        invoke_router,
        prefix=settings.endpoints.base_path.rstrip("/"),
        tags=["invoke"],
    )

    return app


# Create default app instance
app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "apihost.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )


if __name__ == "__main__":
    run()
