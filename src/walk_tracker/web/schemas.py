"""Pydantic request/response schemas for the Web API."""

from __future__ import annotations

from pydantic import BaseModel, Field

# 9999-12-31T23:59:59.999Z, the last instant datetime can represent.
MAX_EPOCH_MS = 253_402_300_799_999
# Signed 32-bit limit.
MAX_ELAPSED_S = 2**31 - 1


class PathPoint(BaseModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    captured_at_ms: int


class SaveWalkRequest(BaseModel):
    user_id: str = Field(min_length=1)
    started_at_ms: int = Field(le=MAX_EPOCH_MS)
    ended_at: str | None = None
    elapsed_s: int = Field(default=0, ge=0, le=MAX_ELAPSED_S)
    path: list[PathPoint] = []
    zoom: int = Field(default=17, ge=0, le=22)


class HealthResponse(BaseModel):
    status: str
    version: str


class SaveWalkResponse(BaseModel):
    walk_id: int
    total_distance_m: float
    total_time_sec: int
    distance_text: str
    duration_text: str
    tiles_count: int
    new_tiles_count: int


class WalkResponse(BaseModel):
    id: int
    user_id: str
    started_at: str
    ended_at: str | None
    total_distance_m: float
    total_time_sec: int
    route_geojson: dict | None
    tile_keys: list[str]
    created_at: str | None


class WalksResponse(BaseModel):
    user_id: str
    walks: list[WalkResponse]


class StatsResponse(BaseModel):
    user_id: str
    total_distance_m: float
    total_time_sec: int
    total_walks: int
    tiles_count: int
    distance_text: str
