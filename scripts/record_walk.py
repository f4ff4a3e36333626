"""Record a walk — live from gpsd, or replayed from a CSV file — and save it to SQLite.

Usage:
  uv run python scripts/record_walk.py --user alice
  uv run python scripts/record_walk.py --user alice --db my_walks.db
  uv run python scripts/record_walk.py --user alice --replay walk.csv
  uv run python scripts/record_walk.py --user alice --replay walk.csv --speed 10

The replay CSV has a header row ``latitude,longitude,captured_at_ms``.  Replay
is paced by the sample timestamps (divided by ``--speed``), so the saved walk
time matches the recording at ``--speed 1`` and shrinks proportionally above it.
Live recording stops on Ctrl+C.
"""

from __future__ import annotations

import argparse
import csv
import logging
import os
import sys
import time

from dotenv import load_dotenv

load_dotenv()

from walk_tracker.tracking.gpsd_provider import GpsdConfig, GpsdLocationProvider  # noqa: E402
from walk_tracker.tracking.models import PositionSample, TrackerSnapshot  # noqa: E402
from walk_tracker.tracking.provider import SimulatedLocationProvider  # noqa: E402
from walk_tracker.tracking.tracker import SessionTracker, TrackerConfig  # noqa: E402
from walk_tracker.walks.builder import build_walk_record  # noqa: E402
from walk_tracker.walks.formatting import format_distance, format_duration  # noqa: E402
from walk_tracker.walks.storage import WalkStorage  # noqa: E402


def _load_csv(path: str) -> list[PositionSample]:
    with open(path, newline="", encoding="utf-8") as fh:
        return [
            PositionSample(
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
                captured_at_ms=int(row["captured_at_ms"]),
            )
            for row in csv.DictReader(fh)
        ]


def _print_status(snap: TrackerSnapshot) -> None:
    pos = snap.current_position
    where = f"({pos.latitude:.5f}, {pos.longitude:.5f})" if pos else "(waiting for fix)"
    err = f"  ! {snap.last_error.message}" if snap.last_error else ""
    print(
        f"\r{len(snap.path):>6}  {format_distance(snap.distance_m):>9}  "
        f"{format_duration(snap.elapsed_s):>9}  {where}{err}",
        end="",
        flush=True,
    )


def main() -> None:
    ap = argparse.ArgumentParser(description="Record a walk and save it to SQLite")
    ap.add_argument("--user", required=True, help="User id that owns the walk")
    ap.add_argument(
        "--db", default=os.environ.get("WALK_TRACKER_DB", "walks.db"), help="SQLite file path"
    )
    ap.add_argument("--replay", default="", help="CSV file to replay instead of live gpsd")
    ap.add_argument(
        "--min-movement-m",
        type=float,
        default=0.0,
        help="Discard fixes closer than this to the previous one (0 = keep every fix)",
    )
    ap.add_argument(
        "--speed", type=float, default=1.0, help="Replay speed-up factor (1 = real time)"
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = TrackerConfig(min_movement_m=args.min_movement_m)
    if args.replay:
        samples = _load_csv(args.replay)
        provider = SimulatedLocationProvider()
    else:
        samples = []
        provider = GpsdLocationProvider(
            GpsdConfig(
                host=os.environ.get("WALK_TRACKER_GPSD_HOST", "localhost"),
                port=int(os.environ.get("WALK_TRACKER_GPSD_PORT", "2947")),
            )
        )

    with SessionTracker(provider, config=config) as tracker:
        if not tracker.start():
            err = tracker.last_error
            print(f"Cannot start walk: {err.message if err else 'unknown error'}", file=sys.stderr)
            sys.exit(1)

        print(f"{'fixes':>6}  {'distance':>9}  {'time':>9}  position")
        print("-" * 60)
        unsubscribe = tracker.subscribe(_print_status)
        try:
            if args.replay:
                provider.replay(samples, speed=args.speed)
            else:
                while True:
                    time.sleep(0.5)
        except KeyboardInterrupt:
            pass
        finally:
            unsubscribe()
            tracker.stop()

        snap = tracker.snapshot()

    record = build_walk_record(args.user, snap)
    storage = WalkStorage(args.db)
    try:
        walk_id, new_tiles = storage.save_walk(record)
        tiles_total = storage.count_tiles(args.user)
    finally:
        storage.close()

    print("\n")
    print(f"Walk {walk_id} saved to {args.db}")
    print(f"  distance : {format_distance(record.total_distance_m)}")
    print(f"  time     : {format_duration(record.total_time_sec)}")
    print(f"  tiles    : {len(record.tile_keys)} this walk ({new_tiles} new), {tiles_total} explored in total")


if __name__ == "__main__":
    main()
