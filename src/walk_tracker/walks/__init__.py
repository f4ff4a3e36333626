"""Finished walks: record building, formatting and SQLite persistence."""

from walk_tracker.walks.builder import build_walk_record, ms_to_iso, route_to_geojson
from walk_tracker.walks.formatting import format_distance, format_duration
from walk_tracker.walks.models import UserStats, WalkRecord
from walk_tracker.walks.storage import WalkStorage

__all__ = [
    "UserStats",
    "WalkRecord",
    "WalkStorage",
    "build_walk_record",
    "format_distance",
    "format_duration",
    "ms_to_iso",
    "route_to_geojson",
]
