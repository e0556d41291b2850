import copy
import os
import sys
from pathlib import Path

import pytest
import sentry_sdk

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Disable outbound Sentry calls during tests
sentry_sdk.init = lambda *args, **kwargs: None  # type: ignore[assignment]
os.environ["SENTRY_DSN"] = ""
test_data_dir = ROOT / "artifacts" / "test-data"
test_data_dir.mkdir(parents=True, exist_ok=True)
os.environ["DATA_DIR"] = str(test_data_dir)

from backend.venue_search.search import VenueSearchService  # noqa: E402
from backend.venue_search.storage import MemoryReviewStore, MemoryVenueStore  # noqa: E402

# Legacy-shaped documents, one per historical writer quirk.
VENUES = [
    {
        "id": "v-kota-palace",
        "vendorId": "vendor-1",
        "status": "approved",
        "vendorActive": True,
        "name": "Kota Palace",
        "slug": "kota-palace",
        "description": "Heritage banquet hall near the station",
        "venueType": "Banquet Hall",
        "tags": ["Wedding", "Garden"],
        "location": {
            "address": "Station Road",
            "city": "Kota",
            "state": "Rajasthan",
            "latitude": 25.18,
            "longitude": 75.83,
        },
        "capacity": {"minGuests": 50, "maxGuests": 300},
        "pricingInfo": {"rentalPrice": 50000, "vegPerPlate": 600},
        "ratingInfo": {"average": 4.5, "totalReviews": 2},
        "createdAt": "2024-03-01T10:00:00+00:00",
    },
    {
        "id": "v-kota-lawn",
        "vendorId": "vendor-2",
        "status": "active",
        "name": "Chambal Lawn",
        "location": "Nayapura, Kota, Rajasthan",
        "capacity": 150,
        "price": 20000,
        "pricePerPlate": {"veg": 500, "nonVeg": 700},
        "tags": ["lawn"],
        "facilities": ["Parking"],
        "amenities": ["Parking", "Stage"],
        "gallery": ["lawn-1.jpg", "lawn-2.jpg"],
        "createdAt": "2024-02-01T10:00:00+00:00",
    },
    {
        "id": "v-kota-hidden",
        "vendorId": "vendor-2",
        "status": "approved",
        "vendorActive": False,
        "name": "Hidden Hall",
        "location": {"city": "Kota", "latitude": 25.19, "longitude": 75.84},
        "capacity": {"max": 500},
        "createdAt": "2024-04-01T10:00:00+00:00",
    },
    {
        "id": "v-kota-pending",
        "vendorId": "vendor-1",
        "status": "pending",
        "name": "Pending Banquet",
        "location": {"city": "Kota", "latitude": 25.2, "longitude": 75.8},
        "capacity": {"min": 10, "max": 100},
        "createdAt": "2024-05-01T10:00:00+00:00",
    },
    {
        "id": "v-jaipur",
        "vendorId": "vendor-3",
        "status": "approved",
        "name": "Pink City Banquet",
        "isFeatured": True,
        "location": {"city": "Jaipur", "state": "Rajasthan", "latitude": 26.91, "longitude": 75.79},
        "capacity": {"min": 20, "max": 400},
        "price": 90000,
        "tags": ["wedding"],
        "createdAt": "2024-01-01T10:00:00+00:00",
    },
    {
        "id": "v-bundi",
        "vendorId": "vendor-3",
        "status": "approved",
        "name": "Bundi Fort View",
        "location": {"city": "Bundi", "state": "Rajasthan", "latitude": 25.44, "longitude": 75.64},
        "capacity": {"maxGuests": 80},
        "createdAt": "2023-12-01T10:00:00+00:00",
    },
]

REVIEWS = [
    {
        "id": "r-1",
        "venueId": "v-kota-palace",
        "userId": {"id": "u-1", "name": "Asha"},
        "rating": 2,
        "comment": "Too loud",
        "createdAt": "2024-03-05T10:00:00+00:00",
        "reply": {"message": "   ", "repliedBy": "vendor-1"},
    },
    {
        "id": "r-2",
        "venueId": "v-kota-palace",
        "userId": "u-2",
        "rating": 4,
        "comment": "Lovely lawns",
        "createdAt": "2024-03-07T10:00:00+00:00",
        "reply": {
            "message": "  Thank you for visiting!  ",
            "repliedBy": {"id": "vendor-1", "name": "Palace Team"},
            "repliedAt": "2024-03-08T10:00:00+00:00",
        },
    },
    {
        "id": "r-3",
        "venueId": "v-kota-palace",
        "userId": {"id": "u-3", "name": "Ravi"},
        "rating": 4,
        "comment": "",
        "createdAt": "2024-03-06T10:00:00+00:00",
    },
    {
        "id": "r-4",
        "venueId": "v-jaipur",
        "userId": "u-4",
        "rating": 5,
        "createdAt": "2024-01-10T10:00:00+00:00",
    },
]


@pytest.fixture
def raw_venue():
    """Look up one of the legacy documents by id."""

    def _lookup(venue_id: str) -> dict:
        return copy.deepcopy(next(venue for venue in VENUES if venue["id"] == venue_id))

    return _lookup


@pytest.fixture
def venue_store() -> MemoryVenueStore:
    return MemoryVenueStore(VENUES)


@pytest.fixture
def review_store() -> MemoryReviewStore:
    return MemoryReviewStore(REVIEWS)


@pytest.fixture
def service(venue_store, review_store) -> VenueSearchService:
    return VenueSearchService(venue_store, review_store, store_timeout=2.0)
