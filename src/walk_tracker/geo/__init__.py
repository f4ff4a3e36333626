"""Great-circle distance and slippy-map tile indexing."""

from walk_tracker.geo.distance import EARTH_RADIUS_M, haversine_m, path_distance_m
from walk_tracker.geo.tiles import DEFAULT_ZOOM, lat_lng_to_tile_key, tile_keys_for_path

__all__ = [
    "DEFAULT_ZOOM",
    "EARTH_RADIUS_M",
    "haversine_m",
    "lat_lng_to_tile_key",
    "path_distance_m",
    "tile_keys_for_path",
]
