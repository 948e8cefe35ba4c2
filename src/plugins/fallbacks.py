from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0
ROAD_FACTOR = 1.3
FALLBACK_SPEED_KMH = 80.0

# EUR per litre, used when neither cache nor org settings have a price.
STATIC_FUEL_PRICES: dict[str, dict[str, float]] = {
    "PT": {"diesel": 1.62, "gasoline": 1.77},
}
DEFAULT_FUEL_PRICES: dict[str, float] = {"diesel": 1.65, "gasoline": 1.82}


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    x = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(x), math.sqrt(1 - x))


def estimate_route(lat1: float, lng1: float, lat2: float, lng2: float) -> tuple[float, int]:
    """Road distance and drive time estimated from straight-line distance."""
    travel_km = round(haversine_km(lat1, lng1, lat2, lng2) * ROAD_FACTOR, 1)
    travel_minutes = round(travel_km / FALLBACK_SPEED_KMH * 60)
    return travel_km, travel_minutes


def static_fuel_price(country: str, fuel_type: str) -> float:
    return STATIC_FUEL_PRICES.get(country.upper(), DEFAULT_FUEL_PRICES)[fuel_type]
