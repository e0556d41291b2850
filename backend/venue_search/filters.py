"""Translate a `SearchRequest` plus the caller identity into a predicate tree.

Top-level clauses are AND-ed; alternatives inside one filter (the text fields
of a free-text query, string vs structured location) are OR-ed. The public
visibility guard is appended last and is never merged with a caller-supplied
status clause.
"""

from __future__ import annotations

import logging

from .contracts import PUBLIC_STATUSES, Caller, SearchRequest
from .predicates import (
    AllOf,
    AnyOf,
    Between,
    Contains,
    Eq,
    NotEq,
    OneOf,
    Predicate,
    any_contains,
)

logger = logging.getLogger(__name__)

TEXT_SEARCH_PATHS = (
    "name",
    "description",
    "about",
    "slug",
    "location",  # string-shaped legacy location
    "location.address",
    "location.city",
    "location.state",
    "location.pincode",
    "venueType",
    "tags",
)
LOCATION_PATHS = (
    "location",
    "location.address",
    "location.city",
    "location.state",
    "location.pincode",
)

PRICE_PATHS = ("pricingInfo.rentalPrice", "price")
VEG_PLATE_PATHS = ("pricingInfo.vegPerPlate", "pricePerPlate.veg")
NON_VEG_PLATE_PATHS = ("pricingInfo.nonVegPerPlate", "pricePerPlate.nonVeg")
CAPACITY_PATHS = ("capacity.maxGuests", "capacity.max", "capacity")
RATING_PATHS = ("ratingInfo.average", "rating")


def visibility_guard() -> tuple[Predicate, ...]:
    """Constraint every non-privileged listing carries: moderated in, vendor did not hide it."""
    return (OneOf("status", PUBLIC_STATUSES, ignore_case=True), NotEq("vendorActive", False))


def _location_field(path: str, term: str) -> AnyOf:
    return AnyOf((Contains(path, term), Contains("location", term)))


def _between(paths: tuple[str, ...], minimum: float | None, maximum: float | None) -> Between:
    return Between(paths[0], minimum, maximum, fallbacks=paths[1:])


def _text_clauses(request: SearchRequest) -> list[Predicate]:
    clauses: list[Predicate] = []
    if request.query:
        clauses.append(any_contains(request.query, TEXT_SEARCH_PATHS))
    if request.city:
        clauses.append(_location_field("location.city", request.city))
    if request.state:
        clauses.append(_location_field("location.state", request.state))
    if request.location:
        clauses.append(any_contains(request.location, LOCATION_PATHS))
    return clauses


def _status_clause(request: SearchRequest, caller: Caller) -> Predicate | None:
    if not request.status:
        return None
    if caller.is_privileged or caller.is_owning_vendor_scope:
        return Eq("status", request.status)
    if request.status in PUBLIC_STATUSES:
        return Eq("status", request.status)
    logger.info(
        "Ignoring non-public status filter for %s caller: %s", caller.role.value, request.status
    )
    return None


def build_predicate(request: SearchRequest, caller: Caller) -> AllOf:
    """Predicate for the full listing search."""
    clauses: list[Predicate] = []

    if caller.is_owning_vendor_scope:
        clauses.append(Eq("vendorId", caller.user_id))

    clauses.extend(_text_clauses(request))

    for paths, bounds in (
        (PRICE_PATHS, request.price),
        (VEG_PLATE_PATHS, request.veg_per_plate),
        (NON_VEG_PLATE_PATHS, request.non_veg_per_plate),
        (CAPACITY_PATHS, request.capacity),
    ):
        if not bounds.is_empty:
            clauses.append(_between(paths, bounds.minimum, bounds.maximum))
    if request.min_rating is not None:
        clauses.append(_between(RATING_PATHS, request.min_rating, None))

    status = _status_clause(request, caller)
    if status is not None:
        clauses.append(status)

    if request.venue_type:
        clauses.append(Contains("venueType", request.venue_type))
    if request.category_id:
        clauses.append(Eq("categoryId", request.category_id))

    if request.sub_menu_id:
        clauses.append(Eq("subMenuId", request.sub_menu_id))
    elif request.menu_id:
        # venues assigned directly to the menu, not to one of its submenus
        clauses.append(Eq("menuId", request.menu_id))
        clauses.append(Eq("subMenuId", None))

    if request.tags:
        clauses.append(OneOf("tags", request.tags, ignore_case=True))

    if request.is_featured is True:
        clauses.append(Eq("isFeatured", True))
    elif request.is_featured is False:
        clauses.append(NotEq("isFeatured", True))

    if not caller.is_privileged and not caller.is_owning_vendor_scope:
        clauses.extend(visibility_guard())

    return AllOf(tuple(clauses))


def build_text_search_predicate(request: SearchRequest) -> AllOf:
    """Predicate for the public text search: free text and location only, always guarded."""
    return AllOf((*_text_clauses(request), *visibility_guard()))


__all__ = [
    "LOCATION_PATHS",
    "TEXT_SEARCH_PATHS",
    "build_predicate",
    "build_text_search_predicate",
    "visibility_guard",
]
