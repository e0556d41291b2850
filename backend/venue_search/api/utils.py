from __future__ import annotations

from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ..contracts import SearchResultPage
from ..errors import VenueSearchError

# error category -> HTTP status
ERROR_STATUS = {
    "store_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "query_timeout": status.HTTP_504_GATEWAY_TIMEOUT,
    "not_found": status.HTTP_404_NOT_FOUND,
    "not_available": status.HTTP_403_FORBIDDEN,
}


def query_mapping(request: Request) -> dict[str, Any]:
    """Flatten query params; repeated keys keep every value as a list."""
    params: dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        params[key] = values[0] if len(values) == 1 else values
    return params


def listing_body(page: SearchResultPage) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": True,
        "count": page.count,
        "totalCount": page.total_count,
        "page": page.page,
        "totalPages": page.total_pages,
        "limit": page.limit,
        "data": [venue.model_dump(mode="json", by_alias=True) for venue in page.results],
    }
    if page.query is not None:
        body["query"] = page.query
    if page.filters is not None:
        body["filters"] = page.filters
    return body


def error_response(exc: VenueSearchError) -> JSONResponse:
    """Only the category and a generic hint leave the service."""
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.category, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={"error": exc.category, "detail": exc.hint},
    )


__all__ = ["ERROR_STATUS", "error_response", "listing_body", "query_mapping"]
