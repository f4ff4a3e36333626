"""Shared fixtures for tracking tests."""

from __future__ import annotations

import math

import pytest

from walk_tracker.geo.distance import EARTH_RADIUS_M
from walk_tracker.tracking.models import PositionSample
from walk_tracker.tracking.provider import SimulatedLocationProvider
from walk_tracker.tracking.tracker import SessionTracker, TrackerConfig

START_MS = 1_700_000_000_000
STEP_100M = math.degrees(100.0 / EARTH_RADIUS_M)


class FakeTimer:
    """Timer double: ticks only when the test calls :meth:`tick`.

    The callback is kept after ``cancel()`` so tests can simulate a tick
    that was already in flight when the session stopped.
    """

    def __init__(self) -> None:
        self.callback = None
        self.running = False
        self.starts = 0
        self.cancels = 0

    def start(self, callback) -> None:
        self.callback = callback
        self.running = True
        self.starts += 1

    def cancel(self) -> None:
        self.running = False
        self.cancels += 1

    def tick(self, n: int = 1) -> None:
        for _ in range(n):
            self.callback()


def make_sample(lat: float, lng: float = 0.0, t: int = START_MS) -> PositionSample:
    return PositionSample(latitude=lat, longitude=lng, captured_at_ms=t)


def straight_walk(n: int) -> list[PositionSample]:
    """*n* samples along a meridian, each exactly 100 m from the previous one."""
    return [make_sample(i * STEP_100M, 0.0, START_MS + i * 3000) for i in range(n)]


@pytest.fixture
def provider():
    return SimulatedLocationProvider()


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def tracker(provider, timer):
    t = SessionTracker(provider, timer=timer, config=TrackerConfig(), clock=lambda: START_MS)
    yield t
    t.close()
