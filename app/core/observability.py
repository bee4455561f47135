"""Request ids, JSON logs and Prometheus metrics for the Board API.

One request id is kept per request in a ContextVar. It is stamped on every
log line and echoed in the X-Request-ID header. Metrics live in a private
registry served by the token-protected ``/metrics`` route. Route labels are
the matched path template so they stay bounded.
"""

import json
import logging
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from fastapi import Request, Response
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match
from starlette.types import ASGIApp

from app.core.telemetry import get_span_id, get_trace_id

_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_request_id() -> str:
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Request id of the request being served, ``""`` outside one."""
    return _request_id_ctx.get()


def set_correlation_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)


# ============================================================================
# Structured Logging
# ============================================================================

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """One JSON object per log line.

    Carries timestamp, level, logger, message and source location, plus the
    request id, trace and span ids when set, a summary of ``exc_info`` and any
    ``extra`` fields under ``"extra"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        ids = {"request_id": get_request_id(), "trace_id": get_trace_id(), "span_id": get_span_id()}
        entry.update({key: value for key, value in ids.items() if value})

        if record.exc_info:
            exc_type, exc, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc) if exc else None,
            }

        extra = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str)


def configure_structured_logging(level: str = "INFO") -> None:
    """Replace the root handlers with one JSON stream handler."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================================================
# Prometheus Metrics
# ============================================================================

_registry = CollectorRegistry()


class Metrics:
    """Every collector the service exports, registered on one registry."""

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry

        # http
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "route", "status_code"],
            registry=self.registry,
        )

        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "route"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry,
        )

        self.http_requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method", "route"],
            registry=self.registry,
        )

        self.http_errors_total = Counter(
            "http_errors_total",
            "Total HTTP errors",
            ["error_type", "method", "route"],
            registry=self.registry,
        )

        # database
        self.db_query_duration_seconds = Histogram(
            "db_query_duration_seconds",
            "Database query duration in seconds",
            ["operation"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self.registry,
        )

        self.db_queries_total = Counter(
            "db_queries_total",
            "Total database queries",
            ["operation", "status"],
            registry=self.registry,
        )

        # pagination
        self.pagination_pages_total = Counter(
            "pagination_pages_total",
            "Total paginated pages built",
            ["mode"],
            registry=self.registry,
        )

        # batched loading
        self.dataloader_batches_total = Counter(
            "dataloader_batches_total",
            "Total batch calls dispatched by data loaders",
            ["loader"],
            registry=self.registry,
        )

        self.dataloader_batch_size = Histogram(
            "dataloader_batch_size",
            "Number of distinct keys per batch call",
            ["loader"],
            buckets=(1, 2, 5, 10, 25, 50, 100),
            registry=self.registry,
        )

        self.dataloader_key_errors_total = Counter(
            "dataloader_key_errors_total",
            "Keys whose batch result was an error",
            ["loader"],
            registry=self.registry,
        )


metrics = Metrics(_registry)


# ============================================================================
# Middleware
# ============================================================================

UNMATCHED_ROUTE = "__unmatched__"

request_logger = logging.getLogger("app.request")


def resolve_route_pattern(request: Request) -> str:
    """
    Route template for metric labels, e.g. ``/api/v1/posts/{post_id}``.

    Routing has not run yet when middleware dispatches, so the app's routes
    are matched here. Paths no route matches share one label.
    """
    app = request.scope.get("app")
    router = getattr(app, "router", None)
    for route in getattr(router, "routes", []):
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return UNMATCHED_ROUTE


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Sets the request id, times the request, records metrics and logs one line.

    Paths under ``skip_paths`` (probes and ``/metrics``) are counted but not logged.
    """

    def __init__(
        self,
        app: ASGIApp,
        metrics_instance: Metrics | None = None,
        skip_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
    ) -> None:
        super().__init__(app)
        self.metrics = metrics_instance or metrics
        self.skip_paths = tuple(skip_paths or ["/api/v1/health", "/api/v1/readyz", "/metrics"])
        self.request_id_header = request_id_header

    def _observe(self, method: str, route: str, status_code: int, elapsed: float) -> None:
        self.metrics.http_requests_total.labels(
            method=method, route=route, status_code=status_code
        ).inc()
        self.metrics.http_request_duration_seconds.labels(method=method, route=route).observe(
            elapsed
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.request_id_header) or generate_request_id()
        set_correlation_id(request_id)

        method = request.method
        route = resolve_route_pattern(request)
        fields: dict[str, Any] = {"method": method, "route": route}

        in_progress = self.metrics.http_requests_in_progress.labels(method=method, route=route)
        in_progress.inc()
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            error_type = type(e).__name__
            self._observe(method, route, 500, elapsed)
            self.metrics.http_errors_total.labels(
                error_type=error_type, method=method, route=route
            ).inc()
            request_logger.error(
                f"{method} {route} - {error_type}: {e}",
                extra={
                    **fields,
                    "status_code": 500,
                    "latency_ms": round(elapsed * 1000, 2),
                    "error_type": error_type,
                },
                exc_info=True,
            )
            raise
        finally:
            in_progress.dec()

        elapsed = time.perf_counter() - started
        self._observe(method, route, response.status_code, elapsed)
        response.headers[self.request_id_header] = request_id

        if not route.startswith(self.skip_paths):
            request_logger.info(
                f"{method} {route}",
                extra={
                    **fields,
                    "status_code": response.status_code,
                    "latency_ms": round(elapsed * 1000, 2),
                },
            )
        return response


# ============================================================================
# Database Metrics
# ============================================================================


class DBMetricsWrapper:
    """Times repository queries by operation name.

    Usage in repos:
        with db_metrics.track("fetch_posts"):
            result = await db.execute(stmt)
    """

    def __init__(self, metrics_instance: Metrics | None = None) -> None:
        self.metrics = metrics_instance or metrics

    @contextmanager
    def track(self, operation: str) -> Iterator[None]:
        started = time.perf_counter()
        status = "error"
        try:
            yield
            status = "success"
        finally:
            self.metrics.db_query_duration_seconds.labels(operation=operation).observe(
                time.perf_counter() - started
            )
            self.metrics.db_queries_total.labels(operation=operation, status=status).inc()


db_metrics = DBMetricsWrapper()


def metrics_endpoint() -> Response:
    """Render the registry in the Prometheus text format."""
    return Response(
        content=generate_latest(_registry),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
