"""Tests for SessionTracker."""

from __future__ import annotations

import dataclasses
import threading
import time
from unittest.mock import MagicMock

import pytest

from walk_tracker.tracking.errors import LocationProviderError
from walk_tracker.tracking.models import ErrorCode, LocationError, SessionState, WatchOptions
from walk_tracker.tracking.provider import SimulatedLocationProvider
from walk_tracker.tracking.timer import IntervalTimer
from walk_tracker.tracking.tracker import SessionTracker, TrackerConfig

from tests.tracking.conftest import START_MS, make_sample, straight_walk

SIGNAL_LOST = LocationError(ErrorCode.POSITION_UNAVAILABLE, "signal lost")


# ---------------------------------------------------------------------------
# Initial state
# ---------------------------------------------------------------------------

def test_new_tracker_is_idle(tracker):
    assert tracker.state is SessionState.IDLE
    assert tracker.path == ()
    assert tracker.distance_m == 0.0
    assert tracker.elapsed_s == 0
    assert tracker.current_position is None
    assert tracker.last_error is None


# ---------------------------------------------------------------------------
# start()
# ---------------------------------------------------------------------------

def test_start_enters_tracking(tracker, provider, timer):
    assert tracker.start() is True
    assert tracker.state is SessionState.TRACKING
    assert tracker.is_tracking is True
    assert tracker.started_at_ms == START_MS
    assert provider.active_watches == 1
    assert timer.running is True


def test_start_requests_fresh_high_accuracy_fixes(timer):
    provider = MagicMock()
    provider.is_available.return_value = True
    provider.watch_position.return_value = 7
    tracker = SessionTracker(provider, timer=timer)

    tracker.start()

    options = provider.watch_position.call_args.args[2]
    assert options == WatchOptions(high_accuracy=True, timeout_s=10.0, maximum_age_s=0.0)


def test_start_while_tracking_is_rejected(tracker, provider):
    tracker.start()
    provider.emit_fix(make_sample(1.0))

    assert tracker.start() is False
    assert tracker.state is SessionState.TRACKING
    assert len(tracker.path) == 1
    assert provider.active_watches == 1


def test_start_unavailable_stays_idle(timer):
    provider = SimulatedLocationProvider(available=False)
    tracker = SessionTracker(provider, timer=timer)

    assert tracker.start() is False
    assert tracker.state is SessionState.IDLE
    assert tracker.last_error is not None
    assert tracker.last_error.code is ErrorCode.UNAVAILABLE
    assert tracker.last_error.is_fatal is True
    assert provider.active_watches == 0
    assert timer.starts == 0


def test_start_when_availability_check_raises(timer):
    provider = MagicMock()
    provider.is_available.side_effect = RuntimeError("no geolocation")
    tracker = SessionTracker(provider, timer=timer)

    assert tracker.start() is False  # must not raise
    assert tracker.last_error.code is ErrorCode.UNAVAILABLE
    provider.watch_position.assert_not_called()


def test_availability_check_runs_outside_lock(timer):
    provider = MagicMock()
    tracker = SessionTracker(provider, timer=timer)
    lock_free = []

    def is_available():
        def try_lock():
            acquired = tracker._lock.acquire(timeout=1.0)
            if acquired:
                tracker._lock.release()
            lock_free.append(acquired)

        t = threading.Thread(target=try_lock)
        t.start()
        t.join()
        return True

    provider.is_available.side_effect = is_available

    assert tracker.start() is True
    assert lock_free == [True]
    tracker.close()


def test_restart_after_stop_resets_session(tracker, provider, timer):
    tracker.start()
    provider.replay(straight_walk(3))
    timer.tick(5)
    provider.emit_error(SIGNAL_LOST)
    tracker.stop()

    assert tracker.start() is True
    assert tracker.path == ()
    assert tracker.distance_m == 0.0
    assert tracker.elapsed_s == 0
    assert tracker.last_error is None
    assert tracker.current_position is None


# ---------------------------------------------------------------------------
# Fixes and distance
# ---------------------------------------------------------------------------

def test_zero_and_one_sample_distance(tracker, provider):
    tracker.start()
    assert tracker.distance_m == 0.0
    provider.emit_fix(make_sample(35.0, 139.0))
    assert tracker.distance_m == 0.0


def test_three_points_100m_apart_sum_to_200m(tracker, provider):
    tracker.start()
    provider.replay(straight_walk(3))
    assert tracker.distance_m == pytest.approx(200.0)


def test_fix_updates_current_position(tracker, provider):
    tracker.start()
    sample = make_sample(35.0, 139.0)
    provider.emit_fix(sample)
    assert tracker.current_position == sample


def test_fixes_appended_in_delivery_order(tracker, provider):
    tracker.start()
    late = make_sample(1.0, t=START_MS + 5000)
    early = make_sample(2.0, t=START_MS + 1000)
    provider.emit_fix(late)
    provider.emit_fix(early)
    assert tracker.path == (late, early)


def test_duplicate_fixes_are_kept(tracker, provider):
    tracker.start()
    sample = make_sample(35.0, 139.0)
    provider.emit_fix(sample)
    provider.emit_fix(sample)
    assert len(tracker.path) == 2
    assert tracker.distance_m == 0.0


def test_mid_session_distance_matches_path(tracker, provider):
    tracker.start()
    for i, sample in enumerate(straight_walk(5)):
        provider.emit_fix(sample)
        assert tracker.distance_m == pytest.approx(100.0 * i)


def test_fix_ignored_when_idle(tracker, provider):
    provider.emit_fix(make_sample(1.0))
    assert tracker.path == ()


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

def test_fix_error_keeps_tracking_and_path(tracker, provider):
    tracker.start()
    provider.replay(straight_walk(2))

    provider.emit_error(SIGNAL_LOST)

    assert tracker.state is SessionState.TRACKING
    assert tracker.last_error == SIGNAL_LOST
    assert tracker.last_error.is_fatal is False
    assert len(tracker.path) == 2


def test_tracking_recovers_after_error(tracker, provider):
    tracker.start()
    walk = straight_walk(3)
    provider.emit_fix(walk[0])
    provider.emit_error(LocationError(ErrorCode.TIMEOUT, "timeout"))
    provider.emit_fix(walk[1])
    provider.emit_fix(walk[2])
    assert len(tracker.path) == 3
    assert tracker.distance_m == pytest.approx(200.0)


# ---------------------------------------------------------------------------
# Elapsed time
# ---------------------------------------------------------------------------

def test_timer_ticks_increment_elapsed(tracker, timer):
    tracker.start()
    timer.tick(3)
    assert tracker.elapsed_s == 3


def test_ticks_ignored_after_stop(tracker, timer):
    tracker.start()
    timer.tick(2)
    tracker.stop()
    timer.tick(4)  # in-flight tick after cancel
    assert tracker.elapsed_s == 2


# ---------------------------------------------------------------------------
# stop()
# ---------------------------------------------------------------------------

def test_stop_freezes_session(tracker, provider, timer):
    tracker.start()
    provider.replay(straight_walk(3))
    timer.tick(10)

    assert tracker.stop() is True
    assert tracker.state is SessionState.STOPPED
    assert provider.active_watches == 0
    assert timer.running is False

    provider.emit_fix(make_sample(10.0))
    assert len(tracker.path) == 3
    assert tracker.distance_m == pytest.approx(200.0)
    assert tracker.elapsed_s == 10


def test_in_flight_fix_after_stop_is_dropped(timer):
    provider = MagicMock()
    provider.is_available.return_value = True
    provider.watch_position.return_value = 1
    tracker = SessionTracker(provider, timer=timer)
    tracker.start()
    on_fix, on_error = provider.watch_position.call_args.args[:2]
    on_fix(make_sample(1.0))

    tracker.stop()
    on_fix(make_sample(2.0))
    on_error(SIGNAL_LOST)

    provider.clear_watch.assert_called_once_with(1)
    assert len(tracker.path) == 1
    assert tracker.last_error is None


def test_stop_when_idle_is_noop(tracker, timer):
    assert tracker.stop() is False
    assert tracker.state is SessionState.IDLE
    assert timer.cancels == 0


def test_stop_twice(tracker):
    tracker.start()
    assert tracker.stop() is True
    assert tracker.stop() is False
    assert tracker.state is SessionState.STOPPED


# ---------------------------------------------------------------------------
# clear()
# ---------------------------------------------------------------------------

def test_clear_from_tracking(tracker, provider, timer):
    tracker.start()
    provider.replay(straight_walk(3))
    timer.tick(3)

    tracker.clear()

    assert tracker.state is SessionState.IDLE
    assert tracker.path == ()
    assert tracker.distance_m == 0.0
    assert tracker.elapsed_s == 0
    assert tracker.started_at_ms is None
    assert provider.active_watches == 0
    assert timer.running is False


def test_clear_from_stopped(tracker, provider):
    tracker.start()
    provider.replay(straight_walk(2))
    tracker.stop()
    tracker.clear()
    assert tracker.state is SessionState.IDLE
    assert tracker.path == ()


def test_clear_from_idle(tracker):
    tracker.clear()
    assert tracker.state is SessionState.IDLE


def test_callbacks_of_cleared_session_ignored(timer):
    provider = MagicMock()
    provider.is_available.return_value = True
    provider.watch_position.return_value = 1
    tracker = SessionTracker(provider, timer=timer)
    tracker.start()
    old_on_fix = provider.watch_position.call_args.args[0]

    tracker.clear()
    tracker.start()
    old_on_fix(make_sample(1.0))
    timer.tick()  # the new session's tick still counts

    assert tracker.path == ()
    assert tracker.elapsed_s == 1


# ---------------------------------------------------------------------------
# Snapshots and observers
# ---------------------------------------------------------------------------

def test_snapshot_is_immutable(tracker, provider):
    tracker.start()
    provider.replay(straight_walk(2))
    snap = tracker.snapshot()

    assert isinstance(snap.path, tuple)
    with pytest.raises(dataclasses.FrozenInstanceError):
        snap.distance_m = 0.0  # type: ignore[misc]

    provider.emit_fix(make_sample(5.0))
    assert len(snap.path) == 2


def test_snapshot_fields(tracker, provider, timer):
    tracker.start()
    provider.replay(straight_walk(3))
    timer.tick(7)
    snap = tracker.snapshot()
    assert snap.state is SessionState.TRACKING
    assert snap.is_tracking is True
    assert snap.distance_m == pytest.approx(200.0)
    assert snap.elapsed_s == 7
    assert snap.started_at_ms == START_MS
    assert snap.current_position == snap.path[-1]


def test_observers_receive_updates(tracker, provider, timer):
    received = []
    tracker.subscribe(received.append)

    tracker.start()
    provider.emit_fix(make_sample(1.0))
    timer.tick()
    tracker.stop()

    states = [s.state for s in received]
    assert states == [
        SessionState.TRACKING,
        SessionState.TRACKING,
        SessionState.TRACKING,
        SessionState.STOPPED,
    ]
    assert received[1].current_position == make_sample(1.0)
    assert received[2].elapsed_s == 1


def test_unsubscribe_is_idempotent(tracker):
    cb = MagicMock()
    unsubscribe = tracker.subscribe(cb)
    unsubscribe()
    unsubscribe()
    tracker.start()
    cb.assert_not_called()


def test_failing_observer_does_not_break_tracking(tracker, provider):
    tracker.subscribe(MagicMock(side_effect=RuntimeError("boom")))
    good = MagicMock()
    tracker.subscribe(good)

    tracker.start()
    provider.emit_fix(make_sample(1.0))

    assert len(tracker.path) == 1
    assert good.call_count == 2


def test_unavailable_start_is_published(timer):
    tracker = SessionTracker(SimulatedLocationProvider(available=False), timer=timer)
    cb = MagicMock()
    tracker.subscribe(cb)
    tracker.start()
    snap = cb.call_args.args[0]
    assert snap.state is SessionState.IDLE
    assert snap.last_error.code is ErrorCode.UNAVAILABLE


# ---------------------------------------------------------------------------
# Minimum-movement policy
# ---------------------------------------------------------------------------

def test_min_movement_disabled_by_default():
    assert TrackerConfig().min_movement_m == 0.0


def test_min_movement_discards_jitter(provider, timer):
    tracker = SessionTracker(provider, timer=timer, config=TrackerConfig(min_movement_m=10.0))
    tracker.start()
    walk = straight_walk(2)
    jitter = make_sample(walk[0].latitude + 0.00001)  # ~1 m

    provider.emit_fix(walk[0])
    provider.emit_fix(jitter)
    provider.emit_fix(walk[1])

    assert tracker.path == (walk[0], walk[1])
    assert tracker.distance_m == pytest.approx(100.0)


def test_min_movement_still_updates_current_position(provider, timer):
    tracker = SessionTracker(provider, timer=timer, config=TrackerConfig(min_movement_m=10.0))
    tracker.start()
    provider.emit_fix(make_sample(1.0))
    jitter = make_sample(1.00001)
    provider.emit_fix(jitter)
    assert tracker.current_position == jitter
    assert len(tracker.path) == 1


# ---------------------------------------------------------------------------
# One-shot position
# ---------------------------------------------------------------------------

def test_get_current_position(tracker, provider):
    sample = make_sample(35.0, 139.0)
    provider.emit_fix(sample)  # no watch yet; primes the provider
    assert tracker.get_current_position() == sample
    assert tracker.current_position == sample
    assert tracker.state is SessionState.IDLE


def test_get_current_position_failure_sets_error(timer):
    provider = MagicMock()
    provider.get_current_position.side_effect = LocationProviderError.from_code(
        ErrorCode.PERMISSION_DENIED, "denied"
    )
    tracker = SessionTracker(provider, timer=timer)

    assert tracker.get_current_position() is None
    assert tracker.last_error.code is ErrorCode.PERMISSION_DENIED


def test_get_current_position_leaves_stopped_session_alone(tracker, provider):
    tracker.start()
    provider.replay(straight_walk(2))
    tracker.stop()
    frozen = tracker.snapshot()
    updates = []
    tracker.subscribe(updates.append)

    elsewhere = make_sample(35.0, 139.0)
    provider.emit_fix(elsewhere)  # no watch after stop; only primes the provider
    assert tracker.get_current_position() == elsewhere

    provider.available = False
    assert tracker.get_current_position() is None

    assert tracker.snapshot() == frozen
    assert tracker.last_error is None
    assert updates == []


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------

def test_close_while_tracking_releases_subscriptions(provider, timer):
    tracker = SessionTracker(provider, timer=timer)
    tracker.start()
    tracker.close()
    assert provider.active_watches == 0
    assert timer.running is False
    tracker.close()  # idempotent


def test_context_manager_stops_on_exit(provider, timer):
    with SessionTracker(provider, timer=timer) as tracker:
        tracker.start()
        provider.emit_fix(make_sample(1.0))
    assert tracker.state is SessionState.STOPPED
    assert provider.active_watches == 0


def test_close_drops_observers(provider, timer):
    tracker = SessionTracker(provider, timer=timer)
    cb = MagicMock()
    tracker.subscribe(cb)
    tracker.close()
    tracker.start()
    cb.assert_not_called()


# ---------------------------------------------------------------------------
# With a real timer thread
# ---------------------------------------------------------------------------

def test_real_timer_counts_and_stops(provider):
    tracker = SessionTracker(provider, timer=IntervalTimer(0.01))
    tracker.start()
    deadline = time.monotonic() + 2.0
    while tracker.elapsed_s < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    tracker.stop()
    frozen = tracker.elapsed_s
    time.sleep(0.05)

    assert frozen >= 3
    assert tracker.elapsed_s == frozen
