"""Tests for haversine distance, radius checks and distance ordering."""

from __future__ import annotations

import pytest
from backend.venue_search.contracts import CanonicalVenue, GeoOrigin, Location
from backend.venue_search.geo import (
    distance_km,
    refine_by_distance,
    sort_by_distance,
    within_radius,
)

KOTA = GeoOrigin(latitude=25.18, longitude=75.83, radius_km=10)


def _venue(venue_id: str, latitude: float | None, longitude: float | None) -> CanonicalVenue:
    return CanonicalVenue(id=venue_id, location=Location(latitude=latitude, longitude=longitude))


class TestDistance:
    @pytest.mark.parametrize("lat,lon", [(0, 0), (25.18, 75.83), (-33.9, 151.2), (89.9, -179.9)])
    def test_identity(self, lat, lon):
        assert distance_km(lat, lon, lat, lon) == 0

    def test_symmetry(self):
        there = distance_km(25.18, 75.83, 26.91, 75.79)
        back = distance_km(26.91, 75.79, 25.18, 75.83)
        assert there == pytest.approx(back)

    def test_known_distance(self):
        # Kota to Jaipur is roughly 190 km as the crow flies
        assert distance_km(25.18, 75.83, 26.91, 75.79) == pytest.approx(192.4, abs=1.0)


class TestWithinRadius:
    def test_origin_always_included(self):
        assert within_radius(KOTA, 25.18, 75.83)
        assert within_radius(KOTA, 25.18, 75.83, radius_km=0)
        assert within_radius(KOTA, 25.18, 75.83, radius_km=-1)

    def test_missing_coordinates_kept(self):
        assert within_radius(KOTA, None, None)
        assert within_radius(KOTA, 25.18, None)

    def test_outside_radius(self):
        assert not within_radius(KOTA, 26.91, 75.79)
        assert within_radius(KOTA, 26.91, 75.79, radius_km=500)

    def test_non_positive_radius_excludes_others(self):
        assert not within_radius(KOTA, 25.19, 75.84, radius_km=0)


class TestOrdering:
    def test_missing_distances_sort_last_in_original_order(self):
        items = [("a", None), ("b", 5.0), ("c", None), ("d", 1.0)]
        ordered = sort_by_distance(items, lambda item: item[1])
        assert [name for name, _ in ordered] == ["d", "b", "a", "c"]

    def test_refine_annotates_filters_and_sorts(self):
        venues = [
            _venue("far", 26.91, 75.79),
            _venue("unlocated", None, None),
            _venue("near", 25.19, 75.84),
            _venue("here", 25.18, 75.83),
        ]
        refined = refine_by_distance(venues, KOTA)
        assert [venue.id for venue in refined] == ["here", "near", "unlocated"]
        assert refined[0].distance == 0
        assert refined[1].distance == pytest.approx(1.5, abs=0.2)
        assert refined[2].distance is None

    def test_refine_does_not_mutate_input(self):
        venues = [_venue("here", 25.18, 75.83)]
        refine_by_distance(venues, KOTA)
        assert venues[0].distance is None
