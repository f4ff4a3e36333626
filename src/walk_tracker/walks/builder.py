"""Build a persistable :class:`WalkRecord` from a stopped tracker session."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from walk_tracker.geo.tiles import DEFAULT_ZOOM, tile_keys_for_path
from walk_tracker.tracking.models import PositionSample, SessionState, TrackerSnapshot
from walk_tracker.walks.models import WalkRecord


def ms_to_iso(epoch_ms: int) -> str:
    """Epoch milliseconds → ``YYYY-MM-DDTHH:MM:SSZ``."""
    dt = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def route_to_geojson(path: Iterable[PositionSample]) -> dict:
    """Return a GeoJSON LineString of ``[longitude, latitude]`` pairs."""
    return {
        "type": "LineString",
        "coordinates": [[p.longitude, p.latitude] for p in path],
    }


def build_walk_record(
    user_id: str,
    snapshot: TrackerSnapshot,
    ended_at: str | None = None,
    zoom: int = DEFAULT_ZOOM,
) -> WalkRecord:
    """Derive the walk record from a finished session.

    Args:
        user_id: Owner of the walk.
        snapshot: Snapshot of a tracker in the STOPPED state.
        ended_at: ISO-8601 end time; defaults to now.
        zoom: Tile zoom for explored-area keys.

    Raises:
        ValueError: If the session has not been stopped or never started.
    """
    if snapshot.state is not SessionState.STOPPED:
        raise ValueError(f"Walk must be stopped before saving (state={snapshot.state.value})")
    if snapshot.started_at_ms is None:
        raise ValueError("Walk has no start time")

    return WalkRecord(
        user_id=user_id,
        started_at=ms_to_iso(snapshot.started_at_ms),
        ended_at=ended_at or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        total_distance_m=snapshot.distance_m,
        total_time_sec=snapshot.elapsed_s,
        route_geojson=route_to_geojson(snapshot.path),
        tile_keys=sorted(tile_keys_for_path(snapshot.path, zoom)),
    )
