"""Query orchestration: build, fetch, enrich, geo-refine, respond.

One `VenueSearchService` is shared by every request; it holds only its
collaborators, never per-request state.
"""

from __future__ import annotations

import asyncio
from typing import Any

from .contracts import (
    ANONYMOUS,
    PUBLIC_STATUSES,
    Caller,
    CanonicalVenue,
    LocationIndex,
    SearchRequest,
    SearchResultPage,
    SortSpec,
    Suggestions,
)
from .errors import VenueNotAvailableError, VenueNotFoundError, VenueSearchError
from .filters import build_predicate, build_text_search_predicate, visibility_guard
from .geo import refine_by_distance
from .logging_config import get_logger
from .metrics import geo_refinements_total, rating_fallbacks_total, track_search
from .normalizer import normalize_venue
from .predicates import AllOf, Predicate
from .ratings import RatingAggregator, RatingSummary, apply_rating, average_rating
from .settings import settings
from .storage import ReviewStore, VenueStore, bounded
from .suggestions import suggest

logger = get_logger(__name__)


def _unique_sorted(values: list[str]) -> list[str]:
    seen: dict[str, str] = {}
    for value in values:
        value = value.strip()
        if value:
            seen.setdefault(value.lower(), value)
    return sorted(seen.values(), key=str.lower)


class VenueSearchService:
    def __init__(
        self,
        venues: VenueStore,
        reviews: ReviewStore,
        *,
        store_timeout: float | None = None,
        ratings: RatingAggregator | None = None,
        exact_geo_totals: bool | None = None,
    ) -> None:
        self.venues = venues
        self.reviews = reviews
        self.store_timeout = (
            store_timeout if store_timeout is not None else settings.STORE_TIMEOUT_SECONDS
        )
        self.ratings = ratings or RatingAggregator(reviews)
        self.exact_geo_totals = (
            settings.GEO_EXACT_TOTALS if exact_geo_totals is None else exact_geo_totals
        )

    # ------------------------------------------------------------------ steps
    async def _fetch(
        self, predicate: Predicate, request: SearchRequest
    ) -> tuple[list[dict[str, Any]], int]:
        """Page and total count run concurrently; the first failure cancels the other."""
        try:
            async with asyncio.TaskGroup() as group:
                page = group.create_task(
                    bounded(
                        self.venues.find_page(
                            predicate, request.sort, request.offset, request.limit
                        ),
                        self.store_timeout,
                        "venue_page",
                    )
                )
                total = group.create_task(
                    bounded(self.venues.count(predicate), self.store_timeout, "venue_count")
                )
        except ExceptionGroup as failures:
            # callers map single typed errors to responses
            raise failures.exceptions[0]
        return page.result(), total.result()

    async def _enrich(self, venues: list[CanonicalVenue]) -> list[CanonicalVenue]:
        fallbacks = {venue.id: RatingSummary.from_snapshot(venue.rating) for venue in venues}
        summaries = await self.ratings.aggregate((venue.id for venue in venues), fallbacks)
        return [apply_rating(venue, summaries.get(venue.id, RatingSummary())) for venue in venues]

    async def _collect(
        self, predicate: Predicate, request: SearchRequest
    ) -> tuple[list[CanonicalVenue], int]:
        if request.origin is not None and self.exact_geo_totals:
            return await self._collect_exact_geo(predicate, request)

        documents, total = await self._fetch(predicate, request)
        venues = await self._enrich([normalize_venue(document) for document in documents])
        if request.origin is None:
            return venues, total

        refined = refine_by_distance(venues, request.origin)
        geo_refinements_total.labels(
            result="reduced" if len(refined) < len(venues) else "unchanged"
        ).inc()
        # the reported total only reflects this page after radius filtering
        return refined, len(refined)

    async def _collect_exact_geo(
        self, predicate: Predicate, request: SearchRequest
    ) -> tuple[list[CanonicalVenue], int]:
        documents = await bounded(
            self.venues.find_page(predicate, request.sort), self.store_timeout, "venue_scan"
        )
        refined = refine_by_distance([normalize_venue(doc) for doc in documents], request.origin)
        geo_refinements_total.labels(
            result="reduced" if len(refined) < len(documents) else "unchanged"
        ).inc()
        page = refined[request.offset : request.offset + request.limit]
        return await self._enrich(page), len(refined)

    def _respond(
        self,
        venues: list[CanonicalVenue],
        total: int,
        request: SearchRequest,
        **extra: Any,
    ) -> SearchResultPage:
        return SearchResultPage(
            results=venues,
            page=request.page,
            limit=request.limit,
            total_count=total,
            total_pages=SearchResultPage.pages_for(total, request.limit),
            **extra,
        )

    # ------------------------------------------------------------------ operations
    async def search(self, request: SearchRequest, caller: Caller = ANONYMOUS) -> SearchResultPage:
        """Full listing search with every filter, pagination and optional geo refinement."""
        with track_search("list"):
            predicate = build_predicate(request, caller)
            venues, total = await self._collect(predicate, request)
            logger.info(
                "venue_search_completed",
                operation="list",
                role=caller.role.value,
                page=request.page,
                limit=request.limit,
                returned=len(venues),
                total=total,
                geo=request.origin is not None,
            )
            return self._respond(venues, total, request)

    async def text_search(self, request: SearchRequest) -> SearchResultPage:
        """Public free-text / location search; always guarded, never geo-refined."""
        with track_search("text_search"):
            request = request.model_copy(update={"origin": None})
            predicate = build_text_search_predicate(request)
            venues, total = await self._collect(predicate, request)
            logger.info(
                "venue_search_completed",
                operation="text_search",
                query=request.query,
                returned=len(venues),
                total=total,
            )
            return self._respond(
                venues,
                total,
                request,
                query=request.query or "",
                filters={
                    "location": request.location,
                    "city": request.city,
                    "state": request.state,
                },
            )

    async def get_venue(self, venue_id: str, caller: Caller = ANONYMOUS) -> CanonicalVenue:
        """One venue with its full reply-annotated review list."""
        with track_search("detail"):
            document = await bounded(self.venues.get(venue_id), self.store_timeout, "venue_get")
            if document is None:
                raise VenueNotFoundError()
            if not caller.is_privileged and not caller.owns(document.get("vendorId")):
                status = str(document.get("status") or "").lower()
                if status not in PUBLIC_STATUSES or document.get("vendorActive") is False:
                    logger.info("venue_not_available", venue_id=venue_id, status=status)
                    raise VenueNotAvailableError()

            venue = normalize_venue(document)
            try:
                reviews = await self.ratings.reviews_with_replies(venue.id)
            except VenueSearchError as exc:
                logger.warning(
                    "rating_aggregation_fallback", venue_id=venue.id, error=exc.category
                )
                rating_fallbacks_total.inc()
                return venue.model_copy(update={"review_count": venue.rating.total_reviews})
            summary = RatingSummary(
                count=len(reviews),
                average=average_rating(review.rating for review in reviews),
                reviews=reviews,
            )
            return apply_rating(venue, summary)

    async def suggest(self, query: Any, limit: Any = None) -> Suggestions:
        with track_search("suggestions"):
            return await suggest(self.venues, query, limit, timeout=self.store_timeout)

    async def list_locations(self) -> LocationIndex:
        """Distinct cities and states among publicly visible venues."""
        with track_search("locations"):
            documents = await bounded(
                self.venues.find_page(AllOf(visibility_guard()), SortSpec()),
                self.store_timeout,
                "venue_locations",
            )
            locations = [normalize_venue(document).location for document in documents]
            return LocationIndex(
                cities=_unique_sorted([location.city for location in locations]),
                states=_unique_sorted([location.state for location in locations]),
            )


__all__ = ["VenueSearchService"]
