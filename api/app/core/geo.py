from __future__ import annotations

import math

# Same radius Postgres earthdistance uses for earth(), so both stores agree on distances.
EARTH_RADIUS_M = 6378168.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def meters_to_km(meters: float, *, digits: int = 2) -> float:
    return round(meters / 1000.0, digits)
