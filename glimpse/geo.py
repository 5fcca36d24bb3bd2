"""
Geospatial helpers.

A small haversine layer so discovery code can do distance checks without
pulling in a GIS dependency.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt
from typing import Iterable, List, Tuple, TypeVar

EARTH_RADIUS_M = 6_371_000.0

K = TypeVar("K")


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"longitude out of range: {self.lon}")


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two coordinates."""
    if lat1 == lat2 and lon1 == lon2:
        return 0.0
    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dphi = phi2 - phi1
    dlmb = radians(lon2 - lon1)

    h = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlmb / 2) ** 2
    # float error can push h slightly past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * asin(sqrt(h))


def distance_between(a: GeoPoint, b: GeoPoint) -> float:
    return distance_meters(a.lat, a.lon, b.lat, b.lon)


def within_radius(center: GeoPoint, point: GeoPoint, radius_meters: float) -> bool:
    return distance_between(center, point) <= radius_meters


def nearby(
    center: GeoPoint,
    radius_meters: float,
    candidates: Iterable[Tuple[K, GeoPoint]],
) -> List[Tuple[K, float]]:
    """Return ``(candidate_id, distance)`` inside the radius, nearest first.

    Equal distances are ordered by candidate id so results are reproducible.
    """
    hits: List[Tuple[K, float]] = []
    for candidate_id, point in candidates:
        d = distance_between(center, point)
        if d <= radius_meters:
            hits.append((candidate_id, d))
    hits.sort(key=lambda item: (item[1], item[0]))
    return hits


__all__ = [
    "EARTH_RADIUS_M",
    "GeoPoint",
    "distance_between",
    "distance_meters",
    "nearby",
    "within_radius",
]
