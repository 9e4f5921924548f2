"""Great-circle distance helpers."""

import math
from typing import Any

from pharmasos.core.errors import InvalidCoordinate
from pharmasos.core.sos_policies import EARTH_RADIUS_KM


def validate_coordinate(lat: float, lon: float) -> None:
    """Raise InvalidCoordinate unless lat in [-90, 90] and lon in [-180, 180]."""
    for value in (lat, lon):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            raise InvalidCoordinate(f"Invalid coordinates provided: ({lat!r}, {lon!r})")
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise InvalidCoordinate(f"Invalid coordinates provided: ({lat!r}, {lon!r})")


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two lat/lng points in kilometers."""
    validate_coordinate(lat1, lon1)
    validate_coordinate(lat2, lon2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_distance(km: float) -> str:
    """Human readable distance: '850 m' below 1 km, '1.45 km' above."""
    if km < 1:
        return f"{round(km * 1000)} m"
    return f"{round(km, 2)} km"


def sort_by_distance(
    items: list[dict[str, Any]],
    lat: float,
    lon: float,
    lat_field: str = "latitude",
    lon_field: str = "longitude",
) -> list[dict[str, Any]]:
    """Copy items adding distance_km / distance_formatted, nearest first.

    Library helper for listing views (pharmacy search, store locators); no
    route in this service calls it.
    """
    enriched = []
    for item in items:
        dist = distance_km(lat, lon, item[lat_field], item[lon_field])
        enriched.append(
            {
                **item,
                "distance_km": round(dist, 2),
                "distance_formatted": format_distance(dist),
            }
        )
    enriched.sort(key=lambda i: i["distance_km"])
    return enriched
