"""FastAPI Web application — walk saving, history and explored-area stats."""

from __future__ import annotations

import os

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException

from walk_tracker.walks.formatting import format_distance, format_duration
from walk_tracker.walks.models import WalkRecord
from walk_tracker.web.schemas import (
    HealthResponse,
    SaveWalkRequest,
    SaveWalkResponse,
    StatsResponse,
    WalkResponse,
    WalksResponse,
)
from walk_tracker.web.service import WalkService

load_dotenv()  # loads .env from project root; must run before env vars are consumed

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

VERSION = "0.1.0"

app = FastAPI(title="Walk Tracker", version=VERSION)


def _service() -> WalkService:
    # Read per request so the database can be switched without re-importing.
    return WalkService(os.environ.get("WALK_TRACKER_DB", "walks.db"))


def _walk_response(record: WalkRecord) -> WalkResponse:
    return WalkResponse(
        id=record.id,
        user_id=record.user_id,
        started_at=record.started_at,
        ended_at=record.ended_at,
        total_distance_m=record.total_distance_m,
        total_time_sec=record.total_time_sec,
        route_geojson=record.route_geojson,
        tile_keys=record.tile_keys,
        created_at=record.created_at,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok", version=VERSION)


@app.post("/api/walks", response_model=SaveWalkResponse)
def save_walk(req: SaveWalkRequest) -> SaveWalkResponse:
    """Persist a finished walk; distance and tiles are computed server-side."""
    try:
        record, new_tiles = _service().save_walk(req)
    except (ValueError, OverflowError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return SaveWalkResponse(
        walk_id=record.id,
        total_distance_m=record.total_distance_m,
        total_time_sec=record.total_time_sec,
        distance_text=format_distance(record.total_distance_m),
        duration_text=format_duration(record.total_time_sec),
        tiles_count=len(record.tile_keys),
        new_tiles_count=new_tiles,
    )


@app.get("/api/walks/{walk_id}", response_model=WalkResponse)
def get_walk(walk_id: int) -> WalkResponse:
    record = _service().get_walk(walk_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Walk not found")
    return _walk_response(record)


@app.get("/api/users/{user_id}/walks", response_model=WalksResponse)
def list_walks(user_id: str) -> WalksResponse:
    """Return a user's walks, newest first."""
    walks = [_walk_response(r) for r in _service().list_walks(user_id)]
    return WalksResponse(user_id=user_id, walks=walks)


@app.get("/api/users/{user_id}/stats", response_model=StatsResponse)
def user_stats(user_id: str) -> StatsResponse:
    stats = _service().user_stats(user_id)
    return StatsResponse(
        user_id=user_id,
        total_distance_m=stats.total_distance_m,
        total_time_sec=stats.total_time_sec,
        total_walks=stats.total_walks,
        tiles_count=stats.tiles_count,
        distance_text=format_distance(stats.total_distance_m),
    )
