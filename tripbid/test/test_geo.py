import pytest
from decimal import Decimal

from tripbid.geo import distance_km, estimate_fare, to_money


POINTS = [
    (0.0, 0.0),
    (0.0, 0.09),
    (-17.8292, 31.0522),
    (51.5074, -0.1278),
    (40.7128, -74.0060),
    (-33.8688, 151.2093),
    (89.9, 179.9),
]


@pytest.mark.parametrize("a", POINTS)
@pytest.mark.parametrize("b", POINTS)
def test_distance_is_symmetric(a, b):
    assert distance_km(*a, *b) == distance_km(*b, *a)


@pytest.mark.parametrize("a", POINTS)
def test_distance_to_self_is_zero(a):
    assert distance_km(*a, *a) == 0


def test_distance_known_values():
    # one hundredth of a degree of longitude on the equator is ~1.11 km
    assert distance_km(0, 0, 0, 0.01) == pytest.approx(1.112, abs=0.001)
    # London to New York
    assert distance_km(51.5074, -0.1278, 40.7128, -74.0060) == pytest.approx(5570, rel=0.01)


def test_ten_km_trip_fare():
    d = distance_km(0, 0, 0, 0.09)
    assert d == pytest.approx(10.0, abs=0.01)
    assert estimate_fare(d) == pytest.approx(7.0, abs=0.01)
    assert to_money(estimate_fare(d)) == Decimal("7.00")


def test_fare_floor_is_base_fare():
    assert estimate_fare(0) == 2.0
    assert estimate_fare(-5) == 2.0


def test_fare_is_non_decreasing():
    fares = [estimate_fare(d / 4) for d in range(0, 400)]
    assert all(f >= 2.0 for f in fares)
    assert fares == sorted(fares)


def test_fare_rates_can_be_overridden():
    assert estimate_fare(10, base_fare=3.0, per_km_rate=1.0) == 13.0


def test_to_money_rounds_half_up():
    assert to_money(7.005) == Decimal("7.01")
    assert to_money(6) == Decimal("6.00")
