"""Haversine great-circle distance."""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Protocol

EARTH_RADIUS_M = 6_371_000.0


class LatLng(Protocol):
    """Anything with ``latitude`` and ``longitude`` in degrees."""

    latitude: float
    longitude: float


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance in metres between two points.

    Args:
        lat1, lng1: First point in degrees.
        lat2, lng2: Second point in degrees.

    No range checks are made; out-of-range degrees give a defined but
    meaningless result.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Rounding can push a hair outside [0, 1] near the antipode.
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def path_distance_m(points: Iterable[LatLng]) -> float:
    """Sum of :func:`haversine_m` over each consecutive pair in *points*.

    Returns 0.0 for fewer than two points.
    """
    total = 0.0
    prev = None
    for pt in points:
        if prev is not None:
            total += haversine_m(prev.latitude, prev.longitude, pt.latitude, pt.longitude)
        prev = pt
    return total
