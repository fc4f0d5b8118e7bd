"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics,
health checks and the search routes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from chatsearch import __version__
from chatsearch.api.routes import messages_router, router
from chatsearch.config import get_settings
from chatsearch.container import ServiceContainer, build_container
from chatsearch.exceptions import ChatSearchError, ErrorCode
from chatsearch.logging_config import get_logger, setup_logging
from chatsearch.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)

logger = get_logger(__name__)

_STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.MESSAGE_NOT_FOUND: 404,
    ErrorCode.CONFIGURATION_ERROR: 503,
    ErrorCode.STORE_UNAVAILABLE: 503,
    ErrorCode.INDEX_UNAVAILABLE: 503,
    ErrorCode.SEARCH_TIMEOUT: 504,
    ErrorCode.EMBEDDING_TIMEOUT: 504,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Wires services on startup unless a container was injected, and releases
    them on shutdown.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting message search service",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
            "store_backend": settings.store_backend.value,
        },
    )

    container: ServiceContainer | None = getattr(app.state, "container", None)
    if container is None:
        container = build_container(settings)
        app.state.container = container
    await container.startup()

    yield

    logger.info("Shutting down message search service")
    await container.shutdown()


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        container: Pre-wired services (for testing); built at startup otherwise.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Hybrid Message Search",
        description="Lexical and semantic search over chat messages",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    if container is not None:
        app.state.container = container

    app.add_middleware(MetricsMiddleware)
    app.add_exception_handler(ChatSearchError, chat_search_exception_handler)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Observability"])

    app.include_router(router)
    app.include_router(messages_router)

    return app


async def chat_search_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle ChatSearchError exceptions.

    Converts exceptions to structured JSON responses.
    """
    if not isinstance(exc, ChatSearchError):
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": str(exc),
                    "details": {},
                }
            },
        )

    status_code = _get_status_code(exc.code)
    log = logger.warning if status_code < 500 else logger.error
    log(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=status_code,
        content=exc.to_dict(),
    )


def _get_status_code(error_code: ErrorCode) -> int:
    """Map error code to HTTP status code."""
    return _STATUS_BY_CODE.get(error_code, 500)


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> JSONResponse:
    """Readiness probe.

    The service is ready when the message store answers. A disabled vector
    index is reported but does not fail readiness, since search falls back
    to the store.
    """
    container: ServiceContainer | None = getattr(request.app.state, "container", None)
    checks: dict[str, str] = {"config": "ok"}

    if container is None:
        checks["store"] = "not_configured"
    else:
        checks["store"] = "ok" if await container.store.ping() else "unavailable"
        checks["vector_index"] = "ok" if container.index.enabled else "fallback"

    ready = checks["store"] == "ok"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "not_ready",
            "checks": checks,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


async def liveness_check() -> dict[str, str]:
    """Liveness probe.

    Simple check that the service is running.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
