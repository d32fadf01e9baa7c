"""
Tests for geographic and datetime helpers.
"""

from datetime import datetime, timedelta

import pytest

from trailteams.utils.datetime_utils import ensure_utc, is_expired, utcnow
from trailteams.utils.geo_utils import calculate_distance_miles, validate_coordinates


def test_distance_to_self_is_zero():
    assert calculate_distance_miles(40.4168, -3.7038, 40.4168, -3.7038) == 0


def test_distance_madrid_barcelona():
    miles = calculate_distance_miles(40.4168, -3.7038, 41.3874, 2.1686)
    assert 310 < miles < 320


def test_distance_is_symmetric():
    a = calculate_distance_miles(40.0, -3.0, 41.0, -4.0)
    b = calculate_distance_miles(41.0, -4.0, 40.0, -3.0)
    assert a == pytest.approx(b)


def test_antipodal_points_do_not_error():
    miles = calculate_distance_miles(0.0, 0.0, 0.0, 180.0)
    assert miles == pytest.approx(3.141592653589793 * 3958.8)


def test_validate_coordinates():
    validate_coordinates(None, None)
    validate_coordinates(90, -180)
    with pytest.raises(ValueError, match="set together"):
        validate_coordinates(40.0, None)
    with pytest.raises(ValueError, match="Latitude"):
        validate_coordinates(91, 0)
    with pytest.raises(ValueError, match="Longitude"):
        validate_coordinates(0, 181)


def test_ensure_utc_localizes_naive_values():
    naive = datetime(2024, 5, 1, 12, 0, 0)
    assert ensure_utc(naive).tzinfo is not None
    assert ensure_utc(None) is None


def test_is_expired():
    old = utcnow() - timedelta(days=8)
    assert is_expired(old, 7) is True
    assert is_expired(old, 30) is False
    assert is_expired(old, None) is False
    assert is_expired(None, 7) is False
