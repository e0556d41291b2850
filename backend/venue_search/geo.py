"""Great-circle distance helpers used to refine a result page around a geo origin."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from typing import TypeVar

from .contracts import CanonicalVenue, GeoOrigin
from .validators import valid_latitude, valid_longitude

EARTH_RADIUS_KM = 6371.0

T = TypeVar("T")


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in km."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def has_coordinates(latitude: float | None, longitude: float | None) -> bool:
    return valid_latitude(latitude) and valid_longitude(longitude)


def distance_from(origin: GeoOrigin, latitude: float | None, longitude: float | None) -> float | None:
    if not has_coordinates(latitude, longitude):
        return None
    return distance_km(origin.latitude, origin.longitude, latitude, longitude)


def within_radius(
    origin: GeoOrigin, latitude: float | None, longitude: float | None, radius_km: float | None = None
) -> bool:
    """Unlocated candidates are kept; they are only ranked last."""
    radius = origin.radius_km if radius_km is None else radius_km
    return _inside(distance_from(origin, latitude, longitude), radius)


def _inside(distance: float | None, radius_km: float) -> bool:
    if distance is None:
        return True
    # an exact origin hit passes even a non-positive radius
    return distance == 0 or distance <= radius_km


def sort_by_distance(items: Sequence[T], distance_of: Callable[[T], float | None]) -> list[T]:
    """Nearest first; items without a distance keep their relative order at the end."""

    def _key(item: T) -> tuple[int, float]:
        distance = distance_of(item)
        return (1, 0.0) if distance is None else (0, distance)

    return sorted(items, key=_key)


def refine_by_distance(venues: Sequence[CanonicalVenue], origin: GeoOrigin) -> list[CanonicalVenue]:
    """Annotate each venue with its distance, drop those outside the radius, sort nearest first."""
    annotated = [
        venue.model_copy(
            update={
                "distance": distance_from(
                    origin, venue.location.latitude, venue.location.longitude
                )
            }
        )
        for venue in venues
    ]
    kept = [venue for venue in annotated if _inside(venue.distance, origin.radius_km)]
    return sort_by_distance(kept, lambda venue: venue.distance)


__all__ = [
    "EARTH_RADIUS_KM",
    "distance_from",
    "distance_km",
    "has_coordinates",
    "refine_by_distance",
    "sort_by_distance",
    "within_radius",
]
