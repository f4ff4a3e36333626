"""Finished-walk data models."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class WalkRecord:
    """A completed walk ready for persistence.

    ``route_geojson`` is a GeoJSON ``LineString`` whose coordinates are
    ``[longitude, latitude]`` pairs in path order.
    """

    user_id: str
    started_at: str
    """ISO-8601 UTC start time."""

    ended_at: str | None
    total_distance_m: float
    total_time_sec: int
    route_geojson: dict | None
    tile_keys: list[str] = field(default_factory=list)
    """Sorted unique tile keys visited during the walk."""

    id: int | None = None
    created_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "total_distance_m": self.total_distance_m,
            "total_time_sec": self.total_time_sec,
            "route_geojson": self.route_geojson,
            "tile_keys": list(self.tile_keys),
            "created_at": self.created_at,
        }


@dataclass
class UserStats:
    """Totals over all of a user's walks."""

    user_id: str
    total_distance_m: float = 0.0
    total_time_sec: int = 0
    total_walks: int = 0
    tiles_count: int = 0
