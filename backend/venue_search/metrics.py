"""Prometheus metrics for the venue search service."""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# ==============================================================================
# APPLICATION INFO
# ==============================================================================

app_info = Info("venue_search", "Venue search API information")
app_info.info({"version": "0.1.0", "service": "venue-search-api"})

# ==============================================================================
# SEARCH METRICS
# ==============================================================================

search_requests_total = Counter(
    "venue_search_requests_total",
    "Venue search operations by outcome",
    ["operation", "outcome"],
)

search_duration_seconds = Histogram(
    "venue_search_duration_seconds",
    "Venue search latency in seconds",
    ["operation"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0),
)

rating_fallbacks_total = Counter(
    "venue_rating_fallbacks_total",
    "Venues whose rating fell back to the stored snapshot",
)

geo_refinements_total = Counter(
    "venue_geo_refinements_total",
    "Search pages refined by distance",
    ["result"],
)

# ==============================================================================
# HTTP METRICS
# ==============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

VENUE_COLLECTION_PATHS = {"search", "suggestions", "locations"}


def normalize_endpoint(path: str) -> str:
    """
    Normalize endpoint path to reduce cardinality.

    Examples:
        /v1/venues/64b7f0c2e4 -> /v1/venues/{id}
        /v1/venues/search -> /v1/venues/search
    """
    parts = path.rstrip("/").split("/")
    for index, part in enumerate(parts):
        previous = parts[index - 1] if index else ""
        if previous == "venues" and part and part not in VENUE_COLLECTION_PATHS:
            parts[index] = "{id}"
        elif re.fullmatch(r"\d+|[a-zA-Z0-9_-]{20,}", part):
            parts[index] = "{id}"
    return "/".join(parts) or "/"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP request metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint itself
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        endpoint = normalize_endpoint(request.url.path)
        start_time = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start_time
            )
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()


@contextmanager
def track_search(operation: str) -> Iterator[None]:
    """Time a search operation and count its outcome by error category."""
    start = time.perf_counter()
    outcome = "ok"
    try:
        yield
    except Exception as exc:
        outcome = getattr(exc, "category", "internal_error")
        raise
    finally:
        search_duration_seconds.labels(operation=operation).observe(time.perf_counter() - start)
        search_requests_total.labels(operation=operation, outcome=outcome).inc()


def get_metrics() -> Response:
    """Render all registered metrics in the Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "PrometheusMiddleware",
    "geo_refinements_total",
    "get_metrics",
    "http_request_duration_seconds",
    "http_requests_total",
    "normalize_endpoint",
    "rating_fallbacks_total",
    "search_duration_seconds",
    "search_requests_total",
    "track_search",
]
