"""WalkStorage — persists finished walks and explored tiles to SQLite.

Schema design notes:
  - ``walk_records`` keeps the route as GeoJSON text; it is only read back
    whole, never queried by coordinate.
  - ``walk_tiles`` links a walk to the tiles it crossed so a walk can be
    reloaded with its tile set.
  - ``explore_tiles`` holds one row per ``(user_id, tile_key)``; a revisit
    only bumps ``last_visited_at``.  Counting rows gives the explored area.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timezone

from walk_tracker.walks.models import UserStats, WalkRecord

_DDL = """
PRAGMA journal_mode = WAL;
PRAGMA synchronous  = NORMAL;

CREATE TABLE IF NOT EXISTS walk_records (
    id               INTEGER PRIMARY KEY,
    user_id          TEXT    NOT NULL,
    started_at       TEXT    NOT NULL,
    ended_at         TEXT,
    total_distance_m REAL    NOT NULL DEFAULT 0,
    total_time_sec   INTEGER NOT NULL DEFAULT 0,
    route_geojson    TEXT,
    created_at       TEXT    NOT NULL
                     DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_walk_records_user
    ON walk_records (user_id);

CREATE TABLE IF NOT EXISTS walk_tiles (
    walk_id  INTEGER NOT NULL,
    tile_key TEXT    NOT NULL,
    PRIMARY KEY (walk_id, tile_key)
);

CREATE TABLE IF NOT EXISTS explore_tiles (
    user_id         TEXT NOT NULL,
    tile_key        TEXT NOT NULL,
    last_visited_at TEXT NOT NULL,
    PRIMARY KEY (user_id, tile_key)
);
"""

_INSERT_WALK = """
INSERT INTO walk_records
    (user_id, started_at, ended_at, total_distance_m, total_time_sec, route_geojson)
VALUES (?, ?, ?, ?, ?, ?)
"""

_INSERT_WALK_TILE = "INSERT OR IGNORE INTO walk_tiles (walk_id, tile_key) VALUES (?, ?)"

_UPSERT_TILE = """
INSERT INTO explore_tiles (user_id, tile_key, last_visited_at)
VALUES (?, ?, ?)
ON CONFLICT (user_id, tile_key) DO UPDATE SET last_visited_at = excluded.last_visited_at
"""

_SELECT_TILE_EXISTS = "SELECT 1 FROM explore_tiles WHERE user_id = ? AND tile_key = ?"


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class WalkStorage:
    """Stores and retrieves walks from a SQLite database.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Pass ``":memory:"`` for in-process testing.
    """

    def __init__(self, db_path: str = "walks.db") -> None:
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        for stmt in _DDL.strip().split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)
        self._conn.commit()

    # ------------------------------------------------------------------
    # Walks
    # ------------------------------------------------------------------

    def save_walk(self, record: WalkRecord) -> tuple[int, int]:
        """Persist *record* with its tiles and mark them explored for its user.

        The walk row, its ``walk_tiles`` and the ``explore_tiles`` upsert are
        written in one transaction; on failure nothing is kept.  Sets
        ``record.id``.

        Returns
        -------
        tuple[int, int]
            ``(walk_id, new_tiles_count)``.
        """
        with self._conn:
            walk_id = self._insert_walk(record)
            new_tiles = self._upsert_tiles(record.user_id, record.tile_keys, record.ended_at)
        record.id = walk_id
        return walk_id, new_tiles

    def get_walk(self, walk_id: int) -> WalkRecord | None:
        """Return the walk with *walk_id*, or None if not found."""
        row = self._conn.execute(
            "SELECT * FROM walk_records WHERE id = ?", (walk_id,)
        ).fetchone()
        return self._to_record(row) if row else None

    def list_walks(self, user_id: str) -> list[WalkRecord]:
        """Return all walks of *user_id*, newest first."""
        rows = self._conn.execute(
            """
            SELECT * FROM walk_records
            WHERE  user_id = ?
            ORDER  BY started_at DESC, id DESC
            """,
            (user_id,),
        ).fetchall()
        return [self._to_record(r) for r in rows]

    # ------------------------------------------------------------------
    # Explored tiles
    # ------------------------------------------------------------------

    def upsert_tiles(
        self, user_id: str, tile_keys: Iterable[str], visited_at: str | None = None
    ) -> int:
        """Mark *tile_keys* as explored by *user_id*.

        Returns the number of tiles explored for the first time.
        """
        with self._conn:
            return self._upsert_tiles(user_id, tile_keys, visited_at)

    def count_tiles(self, user_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM explore_tiles WHERE user_id = ?", (user_id,)
        ).fetchone()
        return int(row[0])

    def user_stats(self, user_id: str) -> UserStats:
        """Return walk totals and explored tile count for *user_id*."""
        row = self._conn.execute(
            """
            SELECT COUNT(*)                           AS total_walks,
                   COALESCE(SUM(total_distance_m), 0) AS total_distance_m,
                   COALESCE(SUM(total_time_sec), 0)   AS total_time_sec
            FROM   walk_records
            WHERE  user_id = ?
            """,
            (user_id,),
        ).fetchone()
        return UserStats(
            user_id=user_id,
            total_distance_m=float(row["total_distance_m"]),
            total_time_sec=int(row["total_time_sec"]),
            total_walks=int(row["total_walks"]),
            tiles_count=self.count_tiles(user_id),
        )

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _insert_walk(self, record: WalkRecord) -> int:
        cursor = self._conn.execute(
            _INSERT_WALK,
            (
                record.user_id,
                record.started_at,
                record.ended_at,
                record.total_distance_m,
                record.total_time_sec,
                json.dumps(record.route_geojson) if record.route_geojson is not None else None,
            ),
        )
        walk_id = cursor.lastrowid
        self._conn.executemany(_INSERT_WALK_TILE, [(walk_id, k) for k in record.tile_keys])
        return walk_id  # type: ignore[return-value]

    def _upsert_tiles(self, user_id: str, tile_keys: Iterable[str], visited_at: str | None) -> int:
        # Runs inside the caller's transaction; does not commit.
        visited = visited_at or _utc_now()
        new_tiles = 0
        for key in set(tile_keys):
            if self._conn.execute(_SELECT_TILE_EXISTS, (user_id, key)).fetchone() is None:
                new_tiles += 1
            self._conn.execute(_UPSERT_TILE, (user_id, key, visited))
        return new_tiles

    def _to_record(self, row: sqlite3.Row) -> WalkRecord:
        tiles = self._conn.execute(
            "SELECT tile_key FROM walk_tiles WHERE walk_id = ? ORDER BY tile_key",
            (row["id"],),
        ).fetchall()
        route = row["route_geojson"]
        return WalkRecord(
            id=row["id"],
            user_id=row["user_id"],
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            total_distance_m=float(row["total_distance_m"]),
            total_time_sec=int(row["total_time_sec"]),
            route_geojson=json.loads(route) if route else None,
            tile_keys=[t["tile_key"] for t in tiles],
            created_at=row["created_at"],
        )
