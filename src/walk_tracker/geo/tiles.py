"""Slippy-map (Web Mercator) tile indexing for explored-area tracking.

A tile key has the form ``"{zoom}/{x}/{y}"``.  Two points inside the same
tile at a given zoom always produce the same key, so a walk's explored area
is the set of keys of its path samples.

Latitudes close to ±90° make the Mercator projection diverge; keys there
are unreliable and are not corrected.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from walk_tracker.geo.distance import LatLng

DEFAULT_ZOOM = 17


def lat_lng_to_tile_key(lat: float, lng: float, zoom: int = DEFAULT_ZOOM) -> str:
    """Return the tile key of the tile containing (*lat*, *lng*) at *zoom*.

    Raises:
        ValueError: If *zoom* is not a non-negative integer.
    """
    if isinstance(zoom, bool) or not isinstance(zoom, int) or zoom < 0:
        raise ValueError(f"zoom must be a non-negative integer, got {zoom!r}")

    n = 2 ** zoom
    x = math.floor((lng + 180.0) / 360.0 * n)
    lat_rad = math.radians(lat)
    y = math.floor(
        (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n
    )
    return f"{zoom}/{x}/{y}"


def tile_keys_for_path(points: Iterable[LatLng], zoom: int = DEFAULT_ZOOM) -> set[str]:
    """Return the de-duplicated set of tile keys visited by *points*."""
    return {lat_lng_to_tile_key(p.latitude, p.longitude, zoom) for p in points}
