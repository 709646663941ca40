"""
Tests for the Coordinate value type.
"""

import math

import pytest

from models.coordinate import Coordinate

from conftest import METERS_PER_DEGREE_LATITUDE, ORIGIN, north_of


def test_parse_mapping():
    """A {latitude, longitude} mapping parses into a Coordinate."""
    assert Coordinate.parse({"latitude": 52, "longitude": 5.5}) == Coordinate(52.0, 5.5)


@pytest.mark.parametrize("raw", [
    None,
    {},
    {"latitude": 52},
    {"latitude": "52", "longitude": 5},
    {"latitude": True, "longitude": 5},
    {"latitude": 91, "longitude": 5},
    {"latitude": 52, "longitude": -181},
    {"latitude": math.nan, "longitude": 5},
])
def test_parse_rejects_invalid(raw):
    """Missing, non-numeric or out-of-range values give None."""
    assert Coordinate.parse(raw) is None


def test_deserialize_garbage():
    assert Coordinate.deserialize("not json") is None
    assert Coordinate.deserialize("") is None
    assert Coordinate.deserialize('{"latitude": 1, "longitude": 2}') == Coordinate(1.0, 2.0)


def test_serialize_is_compact_json():
    assert Coordinate(1.5, 2.0).serialize() == '{"latitude":1.5,"longitude":2.0}'


def test_distance_one_degree_of_latitude():
    """One degree north is R * pi / 180 meters on the haversine sphere."""
    other = Coordinate(ORIGIN.latitude + 1, ORIGIN.longitude)
    assert ORIGIN.distance_to(other) == pytest.approx(METERS_PER_DEGREE_LATITUDE, rel=1e-6)


def test_distance_is_symmetric_and_zero_to_self():
    other = Coordinate(48.8566, 2.3522)
    assert ORIGIN.distance_to(ORIGIN) == 0
    assert ORIGIN.distance_to(other) == pytest.approx(other.distance_to(ORIGIN))


def test_north_of_helper_matches_distance():
    assert ORIGIN.distance_to(north_of(ORIGIN, 40)) == pytest.approx(40, abs=0.01)


def test_is_in_range_is_inclusive():
    other = north_of(ORIGIN, 10)
    exact = ORIGIN.distance_to(other)
    assert ORIGIN.is_in_range(other, exact)
    assert not ORIGIN.is_in_range(other, exact - 0.001)
