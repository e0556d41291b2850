"""Map raw venue documents, in any of their historical shapes, to `CanonicalVenue`.

Venue documents have been written by several generations of the vendor
dashboard, so the same logical field shows up in different shapes:

* ``location``: missing, a free-text string, or a keyed structure whose keys
  may be capitalised (``City`` as well as ``city``).
* ``capacity``: a bare number (legacy) or ``{minGuests, maxGuests}`` /
  ``{min, max}``.
* pricing: ``pricingInfo``, the legacy ``pricePerPlate {veg, nonVeg}`` and the
  flat ``price``.
* media: ``galleryInfo``, ``gallery`` as an object or a flat list, and the
  plain ``images`` list, plus ``coverImage`` / legacy ``image``.

Every function here is pure. Each canonical field is always present in the
output so callers never have to null-check nested structures.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import Any

from .contracts import (
    Availability,
    BookingInfo,
    CanonicalVenue,
    Capacity,
    CategorySummary,
    Gallery,
    Location,
    Pricing,
    RatingInfo,
    ReviewEntry,
    ReviewReply,
)
from .validators import coerce_float

PricingSource = Callable[[Mapping[str, Any]], dict[str, Any]]

LOCATION_KEYS: dict[str, tuple[str, ...]] = {
    "address": ("address",),
    "city": ("city",),
    "state": ("state",),
    "pincode": ("pincode", "postalCode", "zipcode"),
    "map_link": ("mapLink",),
}
LATITUDE_KEYS = ("latitude", "lat")
LONGITUDE_KEYS = ("longitude", "lng", "lon")


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _is_empty(value: Any) -> bool:
    """Empty for "first non-empty wins" merging: zero and False count as unset."""
    return _is_blank(value) or value is False or (
        isinstance(value, (int, float)) and value == 0
    )


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, Mapping):
        inner = value.get("id") or value.get("_id")
        return str(inner) if inner is not None else None
    return str(value)


def _as_number(value: Any) -> float:
    number = coerce_float(value)
    return number if number is not None else 0


def _as_timestamp(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item).strip() for item in value if isinstance(item, str) and item.strip()]


def _lookup(mapping: Mapping[str, Any], *names: str) -> Any:
    """Return the first non-blank value among ``names``, exact keys before case-folded ones."""
    for name in names:
        value = mapping.get(name)
        if not _is_blank(value):
            return value
    folded = {str(key).lower(): value for key, value in mapping.items()}
    for name in names:
        value = folded.get(name.lower())
        if not _is_blank(value):
            return value
    return None


# --------------------------------------------------------------------------- location
def normalize_location(value: Any) -> Location:
    if isinstance(value, Mapping):
        fields = {
            field: _as_text(_lookup(value, *keys)) for field, keys in LOCATION_KEYS.items()
        }
        return Location(
            **fields,
            latitude=coerce_float(_lookup(value, *LATITUDE_KEYS)),
            longitude=coerce_float(_lookup(value, *LONGITUDE_KEYS)),
        )
    if _is_blank(value):
        return Location()
    if isinstance(value, str):
        return Location(address=value.strip())
    # last resort for anything else a legacy writer may have stored
    return Location(address=str(value))


# --------------------------------------------------------------------------- capacity
def normalize_capacity(value: Any) -> Capacity:
    if isinstance(value, Mapping):
        minimum = _first_number(value, "minGuests", "min")
        maximum = _first_number(value, "maxGuests", "max")
        return Capacity(min_guests=int(minimum), max_guests=int(maximum))
    if isinstance(value, bool):
        return Capacity()
    number = coerce_float(value) if isinstance(value, (int, float, str)) else None
    if number is not None and number > 0:
        return Capacity(min_guests=1, max_guests=int(number))
    return Capacity()


def _first_number(mapping: Mapping[str, Any], *keys: str) -> float:
    for key in keys:
        number = coerce_float(mapping.get(key))
        if number:
            return number
    return 0


# --------------------------------------------------------------------------- pricing
def _pricing_info_source(raw: Mapping[str, Any]) -> dict[str, Any]:
    info = raw.get("pricingInfo")
    if not isinstance(info, Mapping):
        return {}
    return {
        "veg_per_plate": _as_number(info.get("vegPerPlate")),
        "non_veg_per_plate": _as_number(info.get("nonVegPerPlate")),
        "rental_price": _as_number(info.get("rentalPrice")),
        "tax_included": bool(info.get("taxIncluded")),
        "decoration_cost": _as_text(info.get("decorationCost")),
        "dj_cost": _as_text(info.get("djCost")),
    }


def _per_plate_source(raw: Mapping[str, Any]) -> dict[str, Any]:
    per_plate = raw.get("pricePerPlate")
    if not isinstance(per_plate, Mapping):
        return {}
    return {
        "veg_per_plate": _as_number(per_plate.get("veg")),
        "non_veg_per_plate": _as_number(per_plate.get("nonVeg")),
    }


def _flat_price_source(raw: Mapping[str, Any]) -> dict[str, Any]:
    return {"rental_price": _as_number(raw.get("price"))}


# Precedence, highest first. Later sources only fill fields still empty.
PRICING_SOURCES: tuple[PricingSource, ...] = (
    _pricing_info_source,
    _per_plate_source,
    _flat_price_source,
)


def merge_first_non_empty(partials: list[dict[str, Any]]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for partial in partials:
        for key, value in partial.items():
            if _is_empty(merged.get(key)) and not _is_empty(value):
                merged[key] = value
    return merged


def normalize_pricing(
    raw: Mapping[str, Any], sources: tuple[PricingSource, ...] = PRICING_SOURCES
) -> Pricing:
    return Pricing(**merge_first_non_empty([source(raw) for source in sources]))


# --------------------------------------------------------------------------- media
def normalize_gallery(raw: Mapping[str, Any]) -> Gallery:
    gallery_info = raw.get("galleryInfo")
    gallery = raw.get("gallery")
    if isinstance(gallery_info, Mapping) and not _is_blank(gallery_info):
        return Gallery(
            photos=_str_list(gallery_info.get("photos")),
            videos=_str_list(gallery_info.get("videos")),
        )
    if isinstance(gallery, Mapping):
        return Gallery(photos=_str_list(gallery.get("photos")), videos=_str_list(gallery.get("videos")))
    if isinstance(gallery, list):
        return Gallery(photos=_str_list(gallery), videos=[])
    return Gallery(photos=_str_list(raw.get("images")), videos=_str_list(raw.get("videos")))


def normalize_images(raw: Mapping[str, Any]) -> list[str]:
    images = _str_list(raw.get("images"))
    if images:
        return images
    gallery = raw.get("gallery")
    return _str_list(gallery) if isinstance(gallery, list) else []


def pick_cover_image(raw: Mapping[str, Any]) -> str:
    for candidate in (raw.get("coverImage"), raw.get("image")):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    images = _str_list(raw.get("images"))
    return images[0] if images else ""


# --------------------------------------------------------------------------- rating snapshot
def _snapshot_review(entry: Any) -> ReviewEntry | None:
    if not isinstance(entry, Mapping):
        return None
    reply = entry.get("reply")
    reply_entry = None
    if isinstance(reply, Mapping):
        message = reply.get("message")
        if isinstance(message, str) and message.strip():
            reply_entry = ReviewReply(
                message=message.strip(),
                replied_by=_as_text(reply.get("repliedBy")) or "Venue Owner",
                replied_at=_as_timestamp(reply.get("repliedAt")),
            )
    return ReviewEntry(
        id=_as_id(entry.get("id") or entry.get("_id")),
        user=_as_text(entry.get("user")) or "Anonymous",
        user_id=_as_id(entry.get("userId")),
        rating=_as_number(entry.get("rating")),
        comment=_as_text(entry.get("comment")),
        date=_as_timestamp(entry.get("date")),
        reply=reply_entry,
    )


def rating_snapshot(raw: Mapping[str, Any]) -> RatingInfo:
    """Rating stored on the venue document itself, used when live aggregation fails."""
    info = raw.get("ratingInfo")
    legacy = raw.get("rating")
    if not isinstance(info, Mapping):
        info = legacy if isinstance(legacy, Mapping) else {}
    reviews = [
        review
        for review in (_snapshot_review(item) for item in info.get("reviews") or [])
        if review is not None
    ]
    average = _as_number(info.get("average"))
    if not average and not isinstance(legacy, Mapping):
        average = _as_number(legacy)
    total = int(_as_number(info.get("totalReviews"))) or len(reviews)
    return RatingInfo(average=round(average, 1), total_reviews=total, reviews=reviews)


# --------------------------------------------------------------------------- the rest
def normalize_availability(value: Any) -> Availability:
    if not isinstance(value, Mapping):
        return Availability()
    return Availability(
        status=_as_text(value.get("status")) or "Open",
        available_dates=_str_list(value.get("availableDates")),
        open_days=_str_list(value.get("openDays")),
        open_time=_as_text(value.get("openTime")),
        close_time=_as_text(value.get("closeTime")),
    )


def normalize_booking_info(raw: Mapping[str, Any]) -> BookingInfo:
    info = raw.get("bookingInfo") if isinstance(raw.get("bookingInfo"), Mapping) else {}
    policy = raw.get("bookingPolicy") if isinstance(raw.get("bookingPolicy"), Mapping) else {}
    contact = raw.get("contact") if isinstance(raw.get("contact"), Mapping) else {}

    advance = _as_text(info.get("advanceRequired"))
    percentage = coerce_float(policy.get("advancePercentage"))
    if not advance and percentage:
        advance = f"{percentage:g}%"
    booking_contact = info.get("bookingContact")
    if not isinstance(booking_contact, Mapping) or not booking_contact:
        booking_contact = contact
    return BookingInfo(
        advance_required=advance,
        cancellation_policy=_as_text(info.get("cancellationPolicy"))
        or _as_text(policy.get("cancellationPolicy")),
        booking_contact=dict(booking_contact),
    )


def normalize_tags(value: Any) -> list[str]:
    tags: list[str] = []
    for tag in _str_list(value):
        lowered = tag.lower()
        if lowered not in tags:
            tags.append(lowered)
    return tags


def _category(value: Any) -> CategorySummary | None:
    if not isinstance(value, Mapping):
        return None
    return CategorySummary(
        id=_as_id(value),
        name=value.get("name"),
        description=value.get("description"),
        icon=value.get("icon"),
        image=value.get("image"),
    )


def _flag(value: Any, default: bool = True) -> bool:
    return default if value is None else value is not False


def normalize_venue(raw: Mapping[str, Any]) -> CanonicalVenue:
    """Return the canonical shape of one raw venue document."""
    pricing = normalize_pricing(raw)
    rating = rating_snapshot(raw)
    description = _as_text(raw.get("description"))
    return CanonicalVenue(
        id=_as_id(raw.get("id") or raw.get("_id")) or "",
        vendor_id=_as_id(raw.get("vendorId")),
        category_id=_as_id(raw.get("categoryId")),
        menu_id=_as_id(raw.get("menuId")),
        sub_menu_id=_as_id(raw.get("subMenuId")),
        name=_as_text(raw.get("name")),
        slug=_as_text(raw.get("slug")),
        description=description,
        about=_as_text(raw.get("about")) or description,
        venue_type=_as_text(raw.get("venueType")),
        tags=normalize_tags(raw.get("tags")),
        location=normalize_location(raw.get("location")),
        capacity=normalize_capacity(raw.get("capacity")),
        pricing_info=pricing,
        price=_as_number(raw.get("price")) or pricing.rental_price,
        cover_image=pick_cover_image(raw),
        images=normalize_images(raw),
        gallery=normalize_gallery(raw),
        # facilities is the legacy name; both are kept, in order, without dedup
        amenities=_str_list(raw.get("amenities")) + _str_list(raw.get("facilities")),
        highlights=_str_list(raw.get("highlights")),
        rooms=int(_as_number(raw.get("rooms"))),
        availability=normalize_availability(raw.get("availability")),
        booking_info=normalize_booking_info(raw),
        rating=rating,
        review_count=rating.total_reviews,
        category=_category(raw.get("categoryId")),
        status=_as_text(raw.get("status")) or "pending",
        vendor_active=_flag(raw.get("vendorActive")),
        is_featured=raw.get("isFeatured") is True,
        booking_button_enabled=_flag(raw.get("bookingButtonEnabled")),
        leads_button_enabled=_flag(raw.get("leadsButtonEnabled")),
        created_at=_as_timestamp(raw.get("createdAt")),
        updated_at=_as_timestamp(raw.get("updatedAt")),
    )


__all__ = [
    "PRICING_SOURCES",
    "merge_first_non_empty",
    "normalize_capacity",
    "normalize_gallery",
    "normalize_location",
    "normalize_pricing",
    "normalize_venue",
    "pick_cover_image",
    "rating_snapshot",
]
