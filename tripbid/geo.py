from decimal import Decimal, ROUND_HALF_UP
from math import radians, cos, sin, atan2, sqrt
from .config import settings

EARTH_RADIUS_KM = 6371.0

CENTS = Decimal("0.01")


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres (haversine)."""
    # convert decimal degrees to radians
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def estimate_fare(distance: float, base_fare: float | None = None, per_km_rate: float | None = None) -> float:
    """Fare for a trip of `distance` km, never below the base fare."""
    base = settings.BASE_FARE if base_fare is None else base_fare
    rate = settings.PER_KM_RATE if per_km_rate is None else per_km_rate
    return max(base + distance * rate, base)


def to_money(value) -> Decimal:
    """Quantize a number to cents, rounding half up."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
