"""Tests for document ordering and the SQL-backed stores."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from backend.venue_search.contracts import SortSpec
from backend.venue_search.db.core import init_db, make_engine, make_session_factory
from backend.venue_search.errors import QueryTimeoutError, StoreUnavailableError
from backend.venue_search.filters import visibility_guard
from backend.venue_search.predicates import AllOf, Eq
from backend.venue_search.seed import load_seed, read_seed
from backend.venue_search.storage import (
    MemoryVenueStore,
    SqlReviewStore,
    SqlVenueStore,
    bounded,
    sort_documents,
)
from sqlalchemy.exc import OperationalError


def _with_stores(tmp_path, scenario, venues=(), reviews=()):
    """Run `scenario(venue_store, review_store)` against a fresh sqlite file."""

    async def _run():
        engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'venues.db'}")
        try:
            await init_db(engine)
            factory = make_session_factory(engine)
            venue_store, review_store = SqlVenueStore(factory), SqlReviewStore(factory)
            if venues:
                await venue_store.add_many(venues)
            if reviews:
                await review_store.add_many(reviews)
            return await scenario(venue_store, review_store)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


class TestSortDocuments:
    def test_missing_values_last_in_both_directions(self):
        docs = [{"id": "a"}, {"id": "b", "price": 5}, {"id": "c", "price": 9}, {"id": "d", "price": ""}]
        ascending = sort_documents(docs, SortSpec(field="price", descending=False))
        descending = sort_documents(docs, SortSpec(field="price", descending=True))
        assert [doc["id"] for doc in ascending] == ["b", "c", "a", "d"]
        assert [doc["id"] for doc in descending] == ["c", "b", "a", "d"]

    def test_ties_broken_by_id(self):
        docs = [{"id": "z", "name": "Hall"}, {"id": "a", "name": "hall"}, {"id": "m", "name": "Hall"}]
        for descending in (True, False):
            ordered = sort_documents(docs, SortSpec(field="name", descending=descending))
            assert [doc["id"] for doc in ordered] == ["a", "m", "z"]

    def test_rating_objects_sort_by_average(self):
        docs = [{"id": "a", "rating": {"average": 2}}, {"id": "b", "rating": 4.5}]
        ordered = sort_documents(docs, SortSpec(field="rating"))
        assert [doc["id"] for doc in ordered] == ["b", "a"]

    def test_unknown_sort_field_falls_back_to_created_at(self):
        assert SortSpec(field="password").path == "createdAt"

    def test_price_sort_prefers_rental_price(self):
        docs = [
            {"id": "a", "price": 900},
            {"id": "b", "pricingInfo": {"rentalPrice": 40000}},
            {"id": "c", "pricingInfo": {"rentalPrice": 0}, "price": 15000},
            {"id": "d"},
        ]
        ordered = sort_documents(docs, SortSpec(field="price", descending=False))
        assert [doc["id"] for doc in ordered] == ["a", "c", "b", "d"]
        assert SortSpec(field="price").paths == ("pricingInfo.rentalPrice", "price")


class TestMemoryStore:
    def test_page_and_count(self, venue_store):
        predicate = AllOf(visibility_guard())
        page = asyncio.run(venue_store.find_page(predicate, SortSpec(), offset=1, limit=2))
        assert [doc["id"] for doc in page] == ["v-kota-lawn", "v-jaipur"]
        assert asyncio.run(venue_store.count(predicate)) == 4

    def test_documents_are_copies(self):
        source = {"id": "x", "name": "Original"}
        store = MemoryVenueStore([source])
        source["name"] = "Changed"
        fetched = asyncio.run(store.get("x"))
        assert fetched["name"] == "Original"

    def test_status_stored_lower_case(self):
        store = MemoryVenueStore([{"id": "x", "status": " Approved "}])
        assert asyncio.run(store.get("x"))["status"] == "approved"
        predicate = AllOf((Eq("status", "approved"),))
        assert asyncio.run(store.count(predicate)) == 1

    def test_ids_assigned_when_missing(self):
        store = MemoryVenueStore([{"_id": "legacy"}, {"name": "fresh"}])
        documents = asyncio.run(store.find_page(AllOf(()), SortSpec()))
        assert {doc["id"] for doc in documents} >= {"legacy"}
        assert all(doc["id"] for doc in documents)


class TestBounded:
    def test_deadline_becomes_query_timeout(self):
        with pytest.raises(QueryTimeoutError):
            asyncio.run(bounded(asyncio.sleep(1), 0.01, "sleep"))

    def test_value_passes_through(self):
        async def _value():
            return 42

        assert asyncio.run(bounded(_value(), 1, "value")) == 42


class TestSqlVenueStore:
    def test_round_trip_keeps_legacy_payload(self, tmp_path, raw_venue):
        async def scenario(venues, _):
            return await venues.get("v-kota-lawn")

        document = _with_stores(tmp_path, scenario, venues=[raw_venue("v-kota-lawn")])
        assert document["location"] == "Nayapura, Kota, Rajasthan"
        assert document["pricePerPlate"] == {"veg": 500, "nonVeg": 700}
        assert document["status"] == "active"
        assert document["vendorId"] == "vendor-2"
        assert document["createdAt"].startswith("2024-02-01T10:00:00")

    def test_guarded_page_matches_memory_store(self, tmp_path, venue_store):
        predicate = AllOf(visibility_guard())
        every_venue = asyncio.run(venue_store.find_page(AllOf(()), SortSpec()))

        async def scenario(venues, _):
            page = await venues.find_page(predicate, SortSpec(), 0, 3)
            return [doc["id"] for doc in page], await venues.count(predicate)

        expected = asyncio.run(venue_store.find_page(predicate, SortSpec(), 0, 3))
        ids, total = _with_stores(tmp_path, scenario, venues=every_venue)
        assert ids == [doc["id"] for doc in expected]
        assert total == 4

    def test_capitalised_status_passes_guard(self, tmp_path, raw_venue):
        legacy = dict(raw_venue("v-jaipur"), id="v-legacy", status="Active")

        async def scenario(venues, _):
            page = await venues.find_page(AllOf(visibility_guard()), SortSpec())
            return [doc["id"] for doc in page]

        assert "v-legacy" in _with_stores(tmp_path, scenario, venues=[legacy])

    def test_vendor_scope_pushed_down(self, tmp_path, raw_venue):
        documents = [raw_venue(vid) for vid in ("v-kota-palace", "v-kota-pending", "v-jaipur")]

        async def scenario(venues, _):
            page = await venues.find_page(AllOf((Eq("vendorId", "vendor-1"),)), SortSpec())
            return [doc["id"] for doc in page]

        assert _with_stores(tmp_path, scenario, venues=documents) == [
            "v-kota-pending",
            "v-kota-palace",
        ]

    def test_missing_venue(self, tmp_path):
        async def scenario(venues, _):
            return await venues.get("nope")

        assert _with_stores(tmp_path, scenario) is None

    def test_unreachable_database(self, tmp_path):
        async def _run():
            engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'venues.db'}")
            try:
                store = SqlVenueStore(make_session_factory(engine))
                with pytest.raises(StoreUnavailableError):
                    await store.count(AllOf(()))
                with pytest.raises(StoreUnavailableError):
                    await store.ping()
            finally:
                await engine.dispose()

        asyncio.run(_run())


    def test_driver_error_is_not_leaked(self):
        session = MagicMock()
        session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("secret dsn")))
        factory = MagicMock()
        factory.return_value.__aenter__ = AsyncMock(return_value=session)
        factory.return_value.__aexit__ = AsyncMock(return_value=False)
        store = SqlVenueStore(factory)
        with pytest.raises(StoreUnavailableError) as excinfo:
            asyncio.run(store.get("v-1"))
        assert "secret dsn" not in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, OperationalError)


class TestSqlReviewStore:
    def test_references_keep_their_shape(self, tmp_path, review_store):
        reviews = asyncio.run(review_store.find_by_venue_ids(["v-kota-palace"]))

        async def scenario(_, store):
            return await store.find_by_venue_ids(["v-kota-palace"])

        stored = _with_stores(tmp_path, scenario, reviews=reviews)
        by_id = {review["id"]: review for review in stored}
        assert [review["id"] for review in stored] == ["r-2", "r-3", "r-1"]
        assert by_id["r-1"]["userId"] == {"id": "u-1", "name": "Asha"}
        assert by_id["r-2"]["userId"] == "u-2"
        assert by_id["r-2"]["reply"]["repliedBy"] == {"id": "vendor-1", "name": "Palace Team"}
        assert by_id["r-1"]["reply"]["repliedBy"] == "vendor-1"
        assert by_id["r-3"]["reply"] is None

    def test_empty_id_list(self, tmp_path):
        async def scenario(_, store):
            return await store.find_by_venue_ids([])

        assert _with_stores(tmp_path, scenario) == []


class TestSeed:
    def _write(self, tmp_path, payload) -> Path:
        path = tmp_path / "seed.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def test_bare_list_is_venues_only(self, tmp_path):
        data = read_seed(self._write(tmp_path, [{"id": "a"}, "junk"]))
        assert data == {"venues": [{"id": "a"}], "reviews": [], "users": []}

    def test_scalar_payload_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            read_seed(self._write(tmp_path, 42))

    def test_load_resolves_names_once(self, tmp_path, raw_venue):
        path = self._write(
            tmp_path,
            {
                "venues": [raw_venue("v-bundi")],
                "reviews": [
                    {
                        "id": "r-9",
                        "venueId": "v-bundi",
                        "userId": "u-9",
                        "rating": 3,
                        "reply": {"message": "Thanks", "repliedBy": "vendor-3"},
                    }
                ],
                "users": [{"id": "u-9", "name": "Meera"}, {"id": "vendor-3", "name": "Fort Team"}],
            },
        )

        async def scenario(venues, reviews):
            first = await load_seed(path, venues, reviews)
            second = await load_seed(path, venues, reviews)
            return first, second, await reviews.find_by_venue_ids(["v-bundi"])

        first, second, stored = _with_stores(tmp_path, scenario)
        assert first == (1, 1)
        assert second == (0, 0)
        assert stored[0]["userId"] == {"id": "u-9", "name": "Meera"}
        assert stored[0]["reply"]["repliedBy"] == {"id": "vendor-3", "name": "Fort Team"}
