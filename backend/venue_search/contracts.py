from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .settings import settings
from .validators import (
    clean_text,
    coerce_bool,
    coerce_float,
    coerce_int,
    split_tags,
    valid_latitude,
    valid_longitude,
)

logger = logging.getLogger(__name__)

PUBLIC_STATUSES = ("approved", "active")
VENUE_STATUSES = ("pending", "approved", "rejected", "active")

# public sort names -> raw record paths, tried in order
SORT_FIELDS: dict[str, tuple[str, ...]] = {
    "createdAt": ("createdAt",),
    "updatedAt": ("updatedAt",),
    "name": ("name",),
    "price": ("pricingInfo.rentalPrice", "price"),
    "rating": ("rating",),
    "ratingInfo.average": ("ratingInfo.average",),
    "isFeatured": ("isFeatured",),
}
DEFAULT_SORT_FIELD = "createdAt"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Canonical venue shape ---
class Location(CamelModel):
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    latitude: float | None = None
    longitude: float | None = None
    map_link: str = ""


class Capacity(CamelModel):
    min_guests: int = 0
    max_guests: int = 0


class Pricing(CamelModel):
    veg_per_plate: float = 0
    non_veg_per_plate: float = 0
    rental_price: float = 0
    tax_included: bool = False
    decoration_cost: str = ""
    dj_cost: str = ""


class Gallery(CamelModel):
    photos: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)


class Availability(CamelModel):
    status: str = "Open"
    available_dates: list[str] = Field(default_factory=list)
    open_days: list[str] = Field(default_factory=list)
    open_time: str = ""
    close_time: str = ""


class BookingInfo(CamelModel):
    advance_required: str = ""
    cancellation_policy: str = ""
    booking_contact: dict[str, Any] = Field(default_factory=dict)


class ReviewReply(CamelModel):
    message: str
    replied_by: str
    replied_at: str | None = None


class ReviewEntry(CamelModel):
    id: str | None = None
    user: str = "Anonymous"
    user_id: str | None = None
    rating: float = 0
    comment: str = ""
    date: str | None = None
    reply: ReviewReply | None = None


class RatingInfo(CamelModel):
    average: float = 0
    total_reviews: int = 0
    reviews: list[ReviewEntry] = Field(default_factory=list)


class CategorySummary(CamelModel):
    id: str | None = None
    name: str | None = None
    description: str | None = None
    icon: str | None = None
    image: str | None = None


class CanonicalVenue(CamelModel):
    id: str
    vendor_id: str | None = None
    category_id: str | None = None
    menu_id: str | None = None
    sub_menu_id: str | None = None
    name: str = ""
    slug: str = ""
    description: str = ""
    about: str = ""
    venue_type: str = ""
    tags: list[str] = Field(default_factory=list)
    location: Location = Field(default_factory=Location)
    capacity: Capacity = Field(default_factory=Capacity)
    pricing_info: Pricing = Field(default_factory=Pricing)
    price: float = 0
    cover_image: str = ""
    images: list[str] = Field(default_factory=list)
    gallery: Gallery = Field(default_factory=Gallery)
    amenities: list[str] = Field(default_factory=list)
    highlights: list[str] = Field(default_factory=list)
    rooms: int = 0
    availability: Availability = Field(default_factory=Availability)
    booking_info: BookingInfo = Field(default_factory=BookingInfo)
    rating: RatingInfo = Field(default_factory=RatingInfo)
    review_count: int = 0
    category: CategorySummary | None = None
    status: str = "pending"
    vendor_active: bool = True
    is_featured: bool = False
    booking_button_enabled: bool = True
    leads_button_enabled: bool = True
    created_at: str | None = None
    updated_at: str | None = None
    distance: float | None = None


# --- Callers ---
class CallerRole(str, Enum):
    ANONYMOUS = "anonymous"
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"


class Caller(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: CallerRole = CallerRole.ANONYMOUS
    user_id: str | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role == CallerRole.ADMIN

    @property
    def is_owning_vendor_scope(self) -> bool:
        return self.role == CallerRole.VENDOR and bool(self.user_id)

    def owns(self, vendor_id: Any) -> bool:
        return self.is_owning_vendor_scope and vendor_id is not None and str(vendor_id) == self.user_id


ANONYMOUS = Caller()


# --- Search request ---
class GeoOrigin(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    radius_km: float


class SortSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = DEFAULT_SORT_FIELD
    descending: bool = True

    @property
    def paths(self) -> tuple[str, ...]:
        return SORT_FIELDS.get(self.field, SORT_FIELDS[DEFAULT_SORT_FIELD])

    @property
    def path(self) -> str:
        return self.paths[0]


class Range(BaseModel):
    model_config = ConfigDict(frozen=True)

    minimum: float | None = None
    maximum: float | None = None

    @property
    def is_empty(self) -> bool:
        return self.minimum is None and self.maximum is None


def _range(params: Mapping[str, Any], low: str, high: str) -> Range:
    return Range(minimum=coerce_float(params.get(low)), maximum=coerce_float(params.get(high)))


class SearchRequest(BaseModel):
    """Immutable, already-sanitised search parameters."""

    model_config = ConfigDict(frozen=True)

    query: str | None = None
    location: str | None = None
    city: str | None = None
    state: str | None = None
    price: Range = Field(default_factory=Range)
    veg_per_plate: Range = Field(default_factory=Range)
    non_veg_per_plate: Range = Field(default_factory=Range)
    capacity: Range = Field(default_factory=Range)
    status: str | None = None
    venue_type: str | None = None
    category_id: str | None = None
    menu_id: str | None = None
    sub_menu_id: str | None = None
    tags: tuple[str, ...] = ()
    is_featured: bool | None = None
    min_rating: float | None = None
    origin: GeoOrigin | None = None
    page: int = 1
    limit: int = Field(default_factory=lambda: settings.SEARCH_DEFAULT_LIMIT)
    sort: SortSpec = Field(default_factory=SortSpec)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_params(
        cls, params: Mapping[str, Any], *, default_limit: int | None = None
    ) -> SearchRequest:
        """Build a request from raw query-string values; bad values degrade to defaults."""
        limit_default = default_limit or settings.SEARCH_DEFAULT_LIMIT
        page = coerce_int(params.get("page"))
        limit = coerce_int(params.get("limit"))
        if page is None or page < 1:
            page = 1
        if limit is None or limit < 1:
            limit = limit_default
        limit = min(limit, settings.SEARCH_MAX_LIMIT)

        sort_by = clean_text(params.get("sortBy"))
        sort_order = (clean_text(params.get("sortOrder")) or "desc").lower()
        sort = SortSpec(
            field=sort_by if sort_by in SORT_FIELDS else DEFAULT_SORT_FIELD,
            descending=sort_order != "asc",
        )

        status = clean_text(params.get("status"))
        return cls(
            query=clean_text(params.get("q")) or clean_text(params.get("search")),
            location=clean_text(params.get("location")),
            city=clean_text(params.get("city")),
            state=clean_text(params.get("state")),
            price=_range(params, "minPrice", "maxPrice"),
            veg_per_plate=_range(params, "minPricePerPlateVeg", "maxPricePerPlateVeg"),
            non_veg_per_plate=_range(params, "minPricePerPlateNonVeg", "maxPricePerPlateNonVeg"),
            capacity=_range(params, "minCapacity", "maxCapacity"),
            status=status.lower() if status else None,
            venue_type=clean_text(params.get("venueType")),
            category_id=clean_text(params.get("categoryId")),
            menu_id=clean_text(params.get("menuId")),
            sub_menu_id=clean_text(params.get("subMenuId")),
            tags=split_tags(params.get("tags")),
            is_featured=coerce_bool(params.get("isFeatured")),
            min_rating=coerce_float(params.get("minRating")),
            origin=parse_origin(params.get("latitude"), params.get("longitude"), params.get("radius")),
            page=page,
            limit=limit,
            sort=sort,
        )


def parse_origin(latitude: Any, longitude: Any, radius: Any = None) -> GeoOrigin | None:
    """Return a geo origin, or None when the coordinates or radius are unusable."""
    if latitude is None and longitude is None:
        return None
    lat = coerce_float(latitude)
    lon = coerce_float(longitude)
    if not valid_latitude(lat) or not valid_longitude(lon):
        logger.info("geo_refinement_skipped reason=invalid_coordinates")
        return None
    if radius is None or (isinstance(radius, str) and not radius.strip()):
        radius_km = settings.DEFAULT_RADIUS_KM
    else:
        radius_km = coerce_float(radius)
        if radius_km is None:
            logger.info("geo_refinement_skipped reason=invalid_radius")
            return None
    return GeoOrigin(latitude=lat, longitude=lon, radius_km=radius_km)


# --- Results ---
class SearchResultPage(CamelModel):
    results: list[CanonicalVenue] = Field(default_factory=list)
    page: int = 1
    limit: int = 0
    total_count: int = 0
    total_pages: int = 0
    query: str | None = None
    filters: dict[str, str | None] | None = None

    @property
    def count(self) -> int:
        return len(self.results)

    @staticmethod
    def pages_for(total: int, limit: int) -> int:
        if limit <= 0:
            return 0
        return math.ceil(total / limit)


class Suggestions(CamelModel):
    query: str = ""
    venues: list[str] = Field(default_factory=list)
    cities: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class LocationIndex(CamelModel):
    cities: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
