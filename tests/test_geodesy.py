"""Tests for geodesy.py — haversine distance, interpolation, coordinate checks."""

import math

import pytest

from geodesy import (
    OutOfRangeCoordinate,
    great_circle_km,
    interpolate,
    km_to_miles,
    midpoint,
    miles_to_km,
    validate_coordinate,
)


class TestGreatCircle:
    def test_same_point_is_zero(self):
        assert great_circle_km(34.05, -118.25, 34.05, -118.25) == 0

    def test_tenth_of_a_degree_north(self):
        assert great_circle_km(34.05, -118.25, 34.14, -118.25) == pytest.approx(10.0, abs=0.1)

    def test_symmetric(self):
        a = great_circle_km(34.05, -118.25, 33.83, -118.29)
        b = great_circle_km(33.83, -118.29, 34.05, -118.25)
        assert a == pytest.approx(b)

    def test_antipodal_does_not_raise(self):
        assert great_circle_km(0, 0, 0, 180) == pytest.approx(math.pi * 6371.0)


class TestUnits:
    def test_km_to_miles(self):
        assert km_to_miles(10) == pytest.approx(6.21371)

    def test_round_trip(self):
        assert miles_to_km(km_to_miles(3.2)) == pytest.approx(3.2)


class TestInterpolate:
    def test_endpoints_exact(self):
        p, q = (34.10, -118.30), (34.00, -118.20)
        assert interpolate(p, q, 0.0) == p
        assert interpolate(p, q, 1.0) == q

    def test_halfway_is_midpoint(self):
        p, q = (34.10, -118.30), (34.00, -118.20)
        assert interpolate(p, q, 0.5) == pytest.approx(midpoint(p, q))

    def test_out_of_range_t(self):
        with pytest.raises(ValueError):
            interpolate((0, 0), (1, 1), 1.5)


class TestValidateCoordinate:
    def test_accepts_numeric_strings(self):
        assert validate_coordinate("34.05", "-118.25") == (34.05, -118.25)

    @pytest.mark.parametrize("lat,lon", [
        (91, 0),
        (0, -181),
        (float("nan"), 0),
        (0, float("inf")),
        ("north", 0),
        (None, 0),
        (True, 0),
    ])
    def test_rejects(self, lat, lon):
        with pytest.raises(OutOfRangeCoordinate):
            validate_coordinate(lat, lon)

    def test_is_a_value_error(self):
        assert issubclass(OutOfRangeCoordinate, ValueError)
