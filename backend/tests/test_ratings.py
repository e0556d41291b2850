"""Tests for per-venue rating aggregation and review reply handling."""

from __future__ import annotations

import asyncio

import pytest
from backend.venue_search.contracts import CanonicalVenue, RatingInfo
from backend.venue_search.errors import StoreUnavailableError
from backend.venue_search.ratings import (
    RatingAggregator,
    RatingSummary,
    apply_rating,
    average_rating,
    review_entry,
)
from backend.venue_search.storage import MemoryReviewStore


def _reviews(venue_id: str, ratings: list[int]) -> list[dict]:
    return [
        {
            "id": f"{venue_id}-{index}",
            "venueId": venue_id,
            "userId": f"u-{index}",
            "rating": rating,
            "createdAt": f"2024-01-{index + 1:02d}T00:00:00+00:00",
        }
        for index, rating in enumerate(ratings)
    ]


class FlakyReviewStore(MemoryReviewStore):
    """Fails for selected venues and records peak concurrency."""

    def __init__(self, reviews, failing=(), delay=0.0):
        super().__init__(reviews)
        self.failing = set(failing)
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def find_by_venue_ids(self, venue_ids):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            if self.failing & set(venue_ids):
                raise StoreUnavailableError()
            return await super().find_by_venue_ids(venue_ids)
        finally:
            self.active -= 1


class SlowReviewStore(MemoryReviewStore):
    async def find_by_venue_ids(self, venue_ids):
        await asyncio.sleep(1)
        return []


class TestAverage:
    def test_mean_rounded_to_one_decimal(self):
        assert average_rating([5, 3, 4]) == 4.0
        assert average_rating([2, 4, 4]) == 3.3

    def test_empty(self):
        assert average_rating([]) == 0


class TestAggregate:
    def test_counts_and_averages(self):
        store = MemoryReviewStore(_reviews("a", [5, 3, 4]))
        summaries = asyncio.run(RatingAggregator(store).aggregate(["a", "b"]))
        assert (summaries["a"].count, summaries["a"].average) == (3, 4.0)
        assert (summaries["b"].count, summaries["b"].average) == (0, 0)

    def test_results_keyed_by_id_not_completion_order(self):
        reviews = _reviews("slow", [1]) + _reviews("fast", [5])

        class OrderedStore(MemoryReviewStore):
            async def find_by_venue_ids(self, venue_ids):
                await asyncio.sleep(0.05 if "slow" in venue_ids else 0)
                return await super().find_by_venue_ids(venue_ids)

        summaries = asyncio.run(RatingAggregator(OrderedStore(reviews)).aggregate(["slow", "fast"]))
        assert list(summaries) == ["slow", "fast"]
        assert summaries["slow"].average == 1
        assert summaries["fast"].average == 5

    def test_partial_failure_uses_fallback(self):
        store = FlakyReviewStore(_reviews("ok", [4]) + _reviews("broken", [1]), failing={"broken"})
        fallback = RatingSummary(count=9, average=4.7)
        summaries = asyncio.run(
            RatingAggregator(store).aggregate(["ok", "broken", "other"], {"broken": fallback})
        )
        assert summaries["ok"].count == 1
        assert summaries["broken"] is fallback
        assert summaries["other"].count == 0

    def test_failure_without_fallback_is_zeroed(self):
        store = FlakyReviewStore([], failing={"x"})
        summaries = asyncio.run(RatingAggregator(store).aggregate(["x"]))
        assert (summaries["x"].count, summaries["x"].average) == (0, 0)

    def test_timeout_is_absorbed_per_venue(self):
        aggregator = RatingAggregator(SlowReviewStore(), timeout=0.01)
        summaries = asyncio.run(aggregator.aggregate(["a"]))
        assert summaries["a"].count == 0

    def test_fan_out_is_bounded(self):
        ids = [f"v{index}" for index in range(12)]
        store = FlakyReviewStore([], delay=0.01)
        asyncio.run(RatingAggregator(store, concurrency=3).aggregate(ids))
        assert 1 < store.peak <= 3


class TestReviewsWithReplies:
    def test_newest_first_with_trimmed_replies(self, review_store):
        reviews = asyncio.run(RatingAggregator(review_store).reviews_with_replies("v-kota-palace"))
        assert [review.id for review in reviews] == ["r-2", "r-3", "r-1"]
        replies = [review.reply for review in reviews if review.reply is not None]
        assert len(replies) == 1
        assert replies[0].message == "Thank you for visiting!"
        assert replies[0].replied_by == "Palace Team"

    def test_reviewer_names(self, review_store):
        reviews = asyncio.run(RatingAggregator(review_store).reviews_with_replies("v-kota-palace"))
        names = {review.id: review.user for review in reviews}
        assert names == {"r-1": "Asha", "r-2": "u-2", "r-3": "Ravi"}

    def test_unresolved_reply_author_falls_back(self):
        entry = review_entry(
            {"id": "r", "rating": 5, "reply": {"message": "Thanks", "repliedBy": "vendor-1"}}
        )
        assert entry.reply is not None
        assert entry.reply.replied_by == "Venue Owner"
        assert entry.user == "Anonymous"

    def test_timeout_raises_for_detail(self):
        from backend.venue_search.errors import QueryTimeoutError

        aggregator = RatingAggregator(SlowReviewStore(), timeout=0.01)
        with pytest.raises(QueryTimeoutError):
            asyncio.run(aggregator.reviews_with_replies("a"))


class TestApplyRating:
    def test_live_summary_replaces_snapshot(self):
        venue = CanonicalVenue(id="a", rating=RatingInfo(average=1.0, total_reviews=1))
        updated = apply_rating(venue, RatingSummary(count=3, average=4.0))
        assert updated.rating.average == 4.0
        assert updated.rating.total_reviews == 3
        assert updated.review_count == 3

    def test_empty_summary_keeps_snapshot(self):
        venue = CanonicalVenue(id="a", rating=RatingInfo(average=4.5, total_reviews=2))
        updated = apply_rating(venue, RatingSummary())
        assert updated.rating.average == 4.5
        assert updated.review_count == 2
