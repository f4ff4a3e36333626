"""WalkService — finalises and persists walks submitted to the Web API."""

from __future__ import annotations

import logging

from walk_tracker.geo.distance import path_distance_m
from walk_tracker.tracking.models import PositionSample, SessionState, TrackerSnapshot
from walk_tracker.walks.builder import build_walk_record
from walk_tracker.walks.models import UserStats, WalkRecord
from walk_tracker.walks.storage import WalkStorage
from walk_tracker.web.schemas import SaveWalkRequest

_logger = logging.getLogger(__name__)


class WalkService:
    """Builds walk records from submitted paths and stores them.

    Parameters
    ----------
    db_path:
        Path to the SQLite database.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def save_walk(self, req: SaveWalkRequest) -> tuple[WalkRecord, int]:
        """Compute distance and tiles for *req*, persist it.

        Distance is recomputed from the submitted path; the client's own
        figure is not trusted.

        Returns
        -------
        tuple[WalkRecord, int]
            ``(record, new_tiles_count)``; ``record.id`` is set.

        Raises
        ------
        ValueError
            If the start time is negative.
        """
        if req.started_at_ms < 0:
            raise ValueError(f"started_at_ms must be >= 0, got {req.started_at_ms}")

        path = tuple(
            PositionSample(p.latitude, p.longitude, p.captured_at_ms) for p in req.path
        )
        snapshot = TrackerSnapshot(
            state=SessionState.STOPPED,
            current_position=path[-1] if path else None,
            path=path,
            distance_m=path_distance_m(path),
            elapsed_s=req.elapsed_s,
            started_at_ms=req.started_at_ms,
        )
        record = build_walk_record(req.user_id, snapshot, ended_at=req.ended_at, zoom=req.zoom)

        storage = WalkStorage(self._db_path)
        try:
            _, new_tiles = storage.save_walk(record)
        finally:
            storage.close()

        _logger.info(
            "Saved walk %s for user %s: %.1f m, %d tiles (%d new)",
            record.id,
            req.user_id,
            record.total_distance_m,
            len(record.tile_keys),
            new_tiles,
        )
        return record, new_tiles

    def get_walk(self, walk_id: int) -> WalkRecord | None:
        storage = WalkStorage(self._db_path)
        try:
            return storage.get_walk(walk_id)
        finally:
            storage.close()

    def list_walks(self, user_id: str) -> list[WalkRecord]:
        storage = WalkStorage(self._db_path)
        try:
            return storage.list_walks(user_id)
        finally:
            storage.close()

    def user_stats(self, user_id: str) -> UserStats:
        storage = WalkStorage(self._db_path)
        try:
            return storage.user_stats(user_id)
        finally:
            storage.close()
