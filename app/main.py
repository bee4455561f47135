import hmac
import logging
import re
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes.health import router as health_router
from app.api.routes.posts import router as posts_router
from app.core.config import AppEnvironment, settings
from app.core.errors import BoardError, get_status_code
from app.core.observability import (
    ObservabilityMiddleware,
    configure_structured_logging,
    get_request_id,
    metrics_endpoint,
)
from app.core.telemetry import init_telemetry, instrument_fastapi, shutdown_telemetry

if settings.observability_structured_logs:
    configure_structured_logging(settings.app_log_level)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# Detail strings matching any of these are withheld from production clients
_SENSITIVE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"[/\\][\w/-]+\.py",
        r"SELECT.*FROM",
        r"INSERT INTO.*VALUES",
        r"UPDATE.*SET",
        r"DELETE FROM",
    )
]


def _sanitize_error_details(details: dict[str, Any]) -> dict[str, Any]:
    """Redact source paths and SQL from error details when running in prod."""
    if settings.app_env != AppEnvironment.PROD:
        return details
    return {key: _sanitize_value(value) for key, value in details.items()}


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return "[REDACTED]" if any(p.search(value) for p in _SENSITIVE_PATTERNS) else value
    if isinstance(value, dict):
        return _sanitize_error_details(value)
    if isinstance(value, list):
        return [_sanitize_value(item) if isinstance(item, dict) else item for item in value]
    return value


def _error_response(
    status_code: int,
    error: str,
    message: Any,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": details or {}},
        headers=headers,
    )


def create_app() -> FastAPI:
    """Build the application: telemetry hooks, middleware, error handlers, routers, /metrics."""
    app = FastAPI(
        title="Board API",
        description="Posts, comments and users with offset/cursor pagination and batched loading",
        version="0.1.0",
    )

    @app.on_event("startup")
    async def startup_telemetry():
        init_telemetry()
        instrument_fastapi(app)
        # SQLAlchemy is instrumented in app/core/db.py once the engine exists

    @app.on_event("shutdown")
    async def shutdown_app():
        shutdown_telemetry()

    if settings.observability_enabled:
        app.add_middleware(
            ObservabilityMiddleware,
            request_id_header=settings.observability_request_id_header,
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(BoardError)
    async def board_error_handler(request: Request, exc: BoardError) -> JSONResponse:
        """Answer a domain error with its mapped status; 5xx are logged as errors."""
        status_code = get_status_code(exc)
        error = exc.__class__.__name__
        context = {"details": exc.details, "path": request.url.path, "request_id": get_request_id()}
        level = logging.ERROR if status_code >= 500 else logging.WARNING
        logger.log(level, f"{error}: {exc.message}", extra=context)

        return _error_response(
            status_code, error, exc.message, _sanitize_error_details(exc.details)
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                f"HTTP {exc.status_code}: {exc.detail}",
                extra={"path": request.url.path, "request_id": get_request_id()},
            )
        return _error_response(exc.status_code, "HTTPException", exc.detail, headers=exc.headers)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log the failure in full and tell the client nothing about it."""
        logger.error(
            f"Unhandled exception: {exc}",
            exc_info=True,
            extra={"path": request.url.path, "request_id": get_request_id()},
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "InternalServerError",
            "An unexpected error occurred",
        )

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(posts_router, prefix=API_PREFIX)

    async def protected_metrics(request: Request) -> Response:
        """Prometheus scrape target; requires the X-Metrics-Token header."""
        expected_token = settings.metrics_token
        if not expected_token:
            logger.error("Metrics endpoint accessed but METRICS_TOKEN not configured")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Metrics token not configured. Set METRICS_TOKEN environment variable.",
            )

        presented = request.headers.get("X-Metrics-Token") or ""
        if not hmac.compare_digest(presented, expected_token):
            logger.warning(
                "Unauthorized metrics access attempt",
                extra={"client_ip": request.client.host if request.client else "unknown"},
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid metrics token")

        return metrics_endpoint()

    if settings.observability_enabled:
        app.add_route("/metrics", protected_metrics)

    return app


app = create_app()
