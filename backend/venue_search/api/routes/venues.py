from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from ...auth import CurrentCaller
from ...contracts import SearchRequest
from ...search import VenueSearchService
from ...settings import settings
from ..types import SuggestionLimit, SuggestionTerm, VenueId
from ..utils import listing_body, query_mapping

router = APIRouter(prefix="/venues", tags=["venues"])


def get_search_service(request: Request) -> VenueSearchService:
    return request.app.state.search_service


SearchService = Annotated[VenueSearchService, Depends(get_search_service)]


@router.get("")
async def list_venues(request: Request, service: SearchService, caller: CurrentCaller):
    search_request = SearchRequest.from_params(query_mapping(request))
    page = await service.search(search_request, caller)
    return listing_body(page)


@router.get("/search")
async def search_venues(request: Request, service: SearchService):
    search_request = SearchRequest.from_params(
        query_mapping(request), default_limit=settings.TEXT_SEARCH_DEFAULT_LIMIT
    )
    page = await service.text_search(search_request)
    return listing_body(page)


@router.get("/suggestions")
async def search_suggestions(
    service: SearchService, q: SuggestionTerm = None, limit: SuggestionLimit = None
):
    suggestions = await service.suggest(q, limit)
    payload = suggestions.model_dump(by_alias=True)
    query = payload.pop("query")
    return {"success": True, "query": query, "suggestions": payload}


@router.get("/locations")
async def venue_locations(service: SearchService):
    index = await service.list_locations()
    return {"success": True, **index.model_dump(by_alias=True)}


@router.get("/{venue_id}")
async def get_venue(venue_id: VenueId, service: SearchService, caller: CurrentCaller):
    venue = await service.get_venue(venue_id, caller)
    return {"success": True, "data": venue.model_dump(mode="json", by_alias=True)}
