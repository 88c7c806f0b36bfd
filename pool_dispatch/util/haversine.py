"""Tiny haversine helper used as the offline distance metric for stop ordering."""

from math import radians, sin, cos, atan2, sqrt

EARTH_RADIUS_MILES = 3959.0


def miles(a_lat: float, a_lon: float, b_lat: float, b_lon: float) -> float:
    lat1, lon1, lat2, lon2 = map(radians, [a_lat, a_lon, b_lat, b_lon])  # deg->rad
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    return EARTH_RADIUS_MILES * 2 * atan2(sqrt(h), sqrt(1 - h))  # arc length in miles
