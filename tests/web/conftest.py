"""Shared fixtures for web tests."""

from __future__ import annotations

import math

import pytest
from fastapi.testclient import TestClient

from walk_tracker.geo.distance import EARTH_RADIUS_M
from walk_tracker.web.app import app

STEP_100M = math.degrees(100.0 / EARTH_RADIUS_M)
START_MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "web_walks.db")
    monkeypatch.setenv("WALK_TRACKER_DB", path)
    return path


@pytest.fixture
def client(db_path):
    """FastAPI test client backed by a temporary database."""
    with TestClient(app) as c:
        yield c


def make_walk_payload(
    user_id: str = "alice",
    n_points: int = 3,
    elapsed_s: int = 125,
    started_at_ms: int = START_MS,
    lat0: float = 35.0,
) -> dict:
    """Build a POST /api/walks body: *n_points* samples 100 m apart."""
    return {
        "user_id": user_id,
        "started_at_ms": started_at_ms,
        "ended_at": "2024-01-01T00:02:05Z",
        "elapsed_s": elapsed_s,
        "path": [
            {
                "latitude": lat0 + i * STEP_100M,
                "longitude": 139.0,
                "captured_at_ms": started_at_ms + i * 3000,
            }
            for i in range(n_points)
        ],
    }
