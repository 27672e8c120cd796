"""Tests for location precedence."""

import pytest

from roomscout.api.schemas import UserPreference
from roomscout.core.types import GeoPoint, LocationSource, ResolvedLocation
from roomscout.discovery.priority import resolve

EXPLICIT = ResolvedLocation(
    point=GeoPoint(10.7731, 106.7009),
    formatted_address="District 1, Ho Chi Minh",
    source=LocationSource.EXPLICIT_SEARCH,
)


class TestResolve:
    def test_explicit_beats_saved(self):
        saved = UserPreference(latitude=21.0285, longitude=105.8542, search_address="Ha Noi")
        assert resolve(EXPLICIT, saved) is EXPLICIT

    def test_explicit_without_saved(self):
        assert resolve(EXPLICIT, None) is EXPLICIT

    def test_saved_coordinates_used(self):
        saved = UserPreference(latitude=21.0285, longitude=105.8542, search_address="Hoan Kiem Lake")
        location = resolve(None, saved)

        assert location.point == GeoPoint(21.0285, 105.8542)
        assert location.formatted_address == "Hoan Kiem Lake"
        assert location.source is LocationSource.SAVED_PREFERENCE

    def test_saved_without_address_gets_generic_label(self):
        location = resolve(None, UserPreference(latitude=21.0, longitude=105.0))
        assert location.formatted_address == "Saved Location"

    def test_zero_coordinates_are_valid(self):
        location = resolve(None, UserPreference(latitude=0.0, longitude=0.0))
        assert location is not None
        assert location.point == GeoPoint(0.0, 0.0)

    def test_missing_longitude(self):
        assert resolve(None, UserPreference(latitude=21.0, search_address="half")) is None

    def test_out_of_range_saved_coordinates(self):
        assert resolve(None, UserPreference(latitude=123.0, longitude=105.0)) is None

    def test_nothing(self):
        assert resolve(None, None) is None
        assert resolve(None, UserPreference()) is None

    def test_region_only_preference_has_no_location(self):
        assert resolve(None, UserPreference(province_id="79", search_address="HCMC")) is None


class TestGeoPoint:
    @pytest.mark.parametrize("lat, lng", [(91.0, 0.0), (0.0, -180.5), (float("nan"), 0.0), (0.0, float("inf"))])
    def test_rejects_invalid(self, lat, lng):
        with pytest.raises(ValueError):
            GeoPoint(lat, lng)

    def test_rejects_bool(self):
        with pytest.raises(ValueError):
            GeoPoint(True, 0.0)

    def test_try_from_strings(self):
        assert GeoPoint.try_from("10.5", "106") == GeoPoint(10.5, 106.0)

    def test_try_from_garbage(self):
        assert GeoPoint.try_from("north", 106) is None
        assert GeoPoint.try_from(None, 106) is None
