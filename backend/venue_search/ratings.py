"""Per-venue review aggregation for a result page.

Each venue on the page gets its own review fetch; fetches run concurrently
under a semaphore and are re-associated with their venue by id, so completion
order never leaks into output order. A failed fetch never fails the page: the
venue keeps the rating snapshot stored on its own document.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .contracts import CanonicalVenue, RatingInfo, ReviewEntry, ReviewReply
from .metrics import rating_fallbacks_total
from .settings import settings
from .storage import ReviewStore, bounded

logger = logging.getLogger(__name__)

REPLY_AUTHOR_FALLBACK = "Venue Owner"
REVIEWER_FALLBACK = "Anonymous"


@dataclass(slots=True)
class RatingSummary:
    count: int = 0
    average: float = 0.0
    reviews: list[ReviewEntry] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: RatingInfo) -> RatingSummary:
        return cls(
            count=snapshot.total_reviews,
            average=snapshot.average,
            reviews=list(snapshot.reviews),
        )


def average_rating(ratings: Iterable[float]) -> float:
    values = list(ratings)
    if not values:
        return 0.0
    return round(sum(values) / len(values), 1)


def _timestamp(value: Any) -> str | None:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value) if value else None


def _display_name(ref: Any) -> str | None:
    if isinstance(ref, Mapping):
        name = ref.get("name")
        return name.strip() if isinstance(name, str) and name.strip() else None
    return None


def _ref_id(ref: Any) -> str | None:
    if isinstance(ref, Mapping):
        ref = ref.get("id") or ref.get("_id")
    return str(ref) if ref not in (None, "") else None


def _reply(raw: Any) -> ReviewReply | None:
    if not isinstance(raw, Mapping):
        return None
    message = raw.get("message")
    if not isinstance(message, str) or not message.strip():
        return None
    return ReviewReply(
        message=message.strip(),
        replied_by=_display_name(raw.get("repliedBy")) or REPLY_AUTHOR_FALLBACK,
        replied_at=_timestamp(raw.get("repliedAt")),
    )


def review_entry(raw: Mapping[str, Any]) -> ReviewEntry:
    """One stored review in its public shape."""
    user = raw.get("userId")
    return ReviewEntry(
        id=_ref_id(raw.get("id")),
        user=_display_name(user) or _ref_id(user) or REVIEWER_FALLBACK,
        user_id=_ref_id(user),
        rating=raw.get("rating") or 0,
        comment=raw.get("comment") or "",
        date=_timestamp(raw.get("createdAt")),
        reply=_reply(raw.get("reply")),
    )


def summarize(reviews: list[Mapping[str, Any]]) -> RatingSummary:
    return RatingSummary(
        count=len(reviews),
        average=average_rating(review.get("rating") or 0 for review in reviews),
        reviews=[review_entry(review) for review in reviews],
    )


def apply_rating(venue: CanonicalVenue, summary: RatingSummary) -> CanonicalVenue:
    """Overlay a live summary on a normalized venue; an empty summary keeps the snapshot."""
    if not summary.count:
        return venue.model_copy(update={"review_count": venue.rating.total_reviews})
    rating = RatingInfo(
        average=summary.average or venue.rating.average,
        total_reviews=summary.count,
        reviews=summary.reviews,
    )
    return venue.model_copy(update={"rating": rating, "review_count": summary.count})


class RatingAggregator:
    def __init__(
        self,
        reviews: ReviewStore,
        *,
        timeout: float | None = None,
        concurrency: int | None = None,
    ) -> None:
        self._reviews = reviews
        self._timeout = timeout if timeout is not None else settings.REVIEW_TIMEOUT_SECONDS
        self._concurrency = max(1, concurrency or settings.AGGREGATION_CONCURRENCY)

    async def _fetch(self, venue_id: str) -> list[dict[str, Any]]:
        return await bounded(
            self._reviews.find_by_venue_ids([venue_id]), self._timeout, "reviews_by_venue"
        )

    async def aggregate(
        self,
        venue_ids: Iterable[str],
        fallbacks: Mapping[str, RatingSummary] | None = None,
    ) -> dict[str, RatingSummary]:
        """Return a summary for every id; a venue whose fetch fails gets its fallback."""
        ids = list(dict.fromkeys(str(venue_id) for venue_id in venue_ids))
        fallbacks = fallbacks or {}
        gate = asyncio.Semaphore(self._concurrency)

        async def _one(venue_id: str) -> RatingSummary:
            async with gate:
                try:
                    return summarize(await self._fetch(venue_id))
                except Exception as exc:
                    logger.warning(
                        "rating_aggregation_fallback venue_id=%s error=%s",
                        venue_id,
                        type(exc).__name__,
                        exc_info=True,
                    )
                    rating_fallbacks_total.inc()
                    return fallbacks.get(venue_id) or RatingSummary()

        summaries = await asyncio.gather(*(_one(venue_id) for venue_id in ids))
        return dict(zip(ids, summaries))

    async def reviews_with_replies(self, venue_id: str) -> list[ReviewEntry]:
        """Full review list for one venue, newest first."""
        rows = await self._fetch(str(venue_id))
        rows = sorted(rows, key=lambda row: _timestamp(row.get("createdAt")) or "", reverse=True)
        return [review_entry(row) for row in rows]


__all__ = [
    "RatingAggregator",
    "RatingSummary",
    "apply_rating",
    "average_rating",
    "review_entry",
    "summarize",
]
