from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .api.routes import venues as venue_routes
from .api.utils import error_response
from .db.core import init_db
from .errors import VenueSearchError
from .health import health_checker
from .logging_config import SERVICE_NAME, SERVICE_VERSION, configure_structlog, get_logger
from .metrics import PrometheusMiddleware, get_metrics
from .search import VenueSearchService
from .seed import load_seed
from .settings import settings
from .storage import SqlReviewStore, SqlVenueStore
from .utils import add_cors, add_request_id_tracing

# Configure structured logging (must be done before any logging calls)
configure_structlog(json_logs=not settings.DEBUG)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        release=settings.SENTRY_RELEASE or f"{SERVICE_NAME}@dev",
        integrations=[FastApiIntegration()],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )

logger = get_logger(__name__)

API_PREFIX = "/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_db()
    if settings.SEED_FILE:
        service: VenueSearchService = app.state.search_service
        await load_seed(settings.SEED_FILE, service.venues, service.reviews)
    logger.info("service_started", database=settings.async_database_url.split("://", 1)[0])
    yield


app = FastAPI(
    title="Venue Search API",
    version=SERVICE_VERSION,
    description="Search, filter and rank marketplace venues",
    lifespan=lifespan,
)
add_cors(app)
add_request_id_tracing(app)
app.add_middleware(PrometheusMiddleware)

app.state.search_service = VenueSearchService(SqlVenueStore(), SqlReviewStore())


@app.exception_handler(VenueSearchError)
async def venue_search_error_handler(request: Request, exc: VenueSearchError) -> JSONResponse:
    logger.warning(
        "venue_search_failed", path=request.url.path, category=exc.category
    )
    return error_response(exc)


app.include_router(venue_routes.router, prefix=API_PREFIX)


@app.get("/health")
async def health(request: Request):
    """Return service health including the venue store check."""
    health_status = await health_checker.check_all(request.app.state.search_service.venues)
    status_code = 200 if health_status["status"] == "healthy" else 503
    body = {
        "status": health_status["status"],
        "timestamp": health_status.get("timestamp"),
        "checks": health_status.get("checks", {}),
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }
    return JSONResponse(content=body, status_code=status_code)


@app.get("/metrics")
def metrics():
    """Expose Prometheus metrics."""
    try:
        return get_metrics()
    except Exception:  # pragma: no cover - defensive path
        logger.exception("Metrics export failed")
        raise HTTPException(status_code=503, detail="metrics unavailable")
