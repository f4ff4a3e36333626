"""SessionTracker — turns a live stream of location fixes into a walk.

The tracker owns one session at a time:

::

    IDLE ──start()──▶ TRACKING ──stop()──▶ STOPPED
      ▲                                      │
      └───────────── clear() ◀───────────────┘   (start() re-arms from STOPPED)

Fix and timer callbacks may arrive on provider/timer threads.  Every
mutation happens under one lock, and each subscription is tagged with the
session generation that created it, so a callback already in flight when
``stop()``, ``clear()`` or a new ``start()`` runs is dropped instead of
being applied to the wrong session.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from walk_tracker.geo.distance import haversine_m, path_distance_m
from walk_tracker.tracking.errors import LocationProviderError
from walk_tracker.tracking.models import (
    ErrorCode,
    LocationError,
    PositionSample,
    SessionState,
    TrackerSnapshot,
    WatchOptions,
)
from walk_tracker.tracking.provider import LocationProvider
from walk_tracker.tracking.timer import IntervalTimer

_logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[TrackerSnapshot], None]


@dataclass
class TrackerConfig:
    """Runtime settings for a :class:`SessionTracker`."""

    high_accuracy: bool = True
    fix_timeout_s: float = 10.0     # per-fix wait before a TIMEOUT error
    maximum_age_s: float = 0.0      # 0 = no cached fixes
    tick_interval_s: float = 1.0    # elapsed-time resolution
    min_movement_m: float = 0.0
    """Discard fixes closer than this to the last accepted sample. 0 disables."""

    def watch_options(self) -> WatchOptions:
        return WatchOptions(
            high_accuracy=self.high_accuracy,
            timeout_s=self.fix_timeout_s,
            maximum_age_s=self.maximum_age_s,
        )


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class SessionTracker:
    """Records one walking session from a :class:`LocationProvider`.

    Parameters
    ----------
    provider:
        Device location provider.  Injected; the tracker never creates one.
    timer:
        Periodic timer with ``start(callback)`` / ``cancel()``.  Defaults to
        an :class:`IntervalTimer` at ``config.tick_interval_s``.
    config:
        Tracker settings.
    clock:
        Returns the current epoch time in milliseconds.  Injected for tests.
    """

    def __init__(
        self,
        provider: LocationProvider,
        timer=None,
        config: TrackerConfig | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._cfg = config or TrackerConfig()
        self._provider = provider
        self._timer = timer if timer is not None else IntervalTimer(self._cfg.tick_interval_s)
        self._clock = clock or _epoch_ms
        self._lock = threading.RLock()
        self._observers: list[SnapshotCallback] = []

        self._state = SessionState.IDLE
        self._generation = 0
        self._watch_id: int | None = None
        self._path: list[PositionSample] = []
        self._current: PositionSample | None = None
        self._elapsed_s = 0
        self._started_at_ms: int | None = None
        self._last_error: LocationError | None = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_tracking(self) -> bool:
        return self._state is SessionState.TRACKING

    @property
    def path(self) -> tuple[PositionSample, ...]:
        with self._lock:
            return tuple(self._path)

    @property
    def current_position(self) -> PositionSample | None:
        return self._current

    @property
    def distance_m(self) -> float:
        """Cumulative distance, recomputed from the full path on every read."""
        with self._lock:
            return path_distance_m(self._path)

    @property
    def elapsed_s(self) -> int:
        return self._elapsed_s

    @property
    def started_at_ms(self) -> int | None:
        return self._started_at_ms

    @property
    def last_error(self) -> LocationError | None:
        return self._last_error

    def snapshot(self) -> TrackerSnapshot:
        """Return an immutable copy of the current session state."""
        with self._lock:
            return self._snapshot_locked()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register *callback* to receive a :class:`TrackerSnapshot` on every change.

        Returns a function that removes the callback; calling it more than
        once is harmless.
        """
        with self._lock:
            self._observers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._observers:
                    self._observers.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Begin a new session.

        Returns
        -------
        bool
            True if tracking started.  False if a session is already
            tracking, or if the location capability is unavailable; in
            that case ``last_error`` is set and the state is IDLE.
            Never raises.

        The availability check runs outside the lock; for gpsd it can block
        for up to the connect timeout.
        """
        with self._lock:
            if self._state is SessionState.TRACKING:
                _logger.debug("start() ignored: session already tracking")
                return False

        available = self._provider_available()

        with self._lock:
            if self._state is SessionState.TRACKING:
                _logger.debug("start() ignored: session started concurrently")
                return False

            if not available:
                self._reset()
                self._last_error = LocationError(
                    ErrorCode.UNAVAILABLE, "Location services are not supported"
                )
                _logger.warning("Cannot start walk: location capability unavailable")
                snap = self._snapshot_locked()
                started = False
            else:
                self._reset()
                self._generation += 1
                generation = self._generation
                self._state = SessionState.TRACKING
                self._started_at_ms = self._clock()
                self._watch_id = self._provider.watch_position(
                    lambda sample: self._on_fix(generation, sample),
                    lambda error: self._on_error(generation, error),
                    self._cfg.watch_options(),
                )
                self._timer.start(lambda: self._on_tick(generation))
                _logger.info("Walk session %d started", generation)
                snap = self._snapshot_locked()
                started = True

        self._publish(snap)
        return started

    def stop(self) -> bool:
        """End the session and freeze path, distance and elapsed time.

        Returns False (no-op) unless the session is tracking.
        """
        with self._lock:
            if self._state is not SessionState.TRACKING:
                _logger.debug("stop() ignored: state is %s", self._state.value)
                return False
            self._state = SessionState.STOPPED
            watch_id, self._watch_id = self._watch_id, None
            snap = self._snapshot_locked()

        self._release(watch_id)
        _logger.info(
            "Walk session %d stopped: %d samples, %.1f m, %d s",
            self._generation,
            len(snap.path),
            snap.distance_m,
            snap.elapsed_s,
        )
        self._publish(snap)
        return True

    def clear(self) -> None:
        """Discard any session, running or finished, and return to IDLE."""
        with self._lock:
            was_tracking = self._state is SessionState.TRACKING
            watch_id, self._watch_id = self._watch_id, None
            # Orphan callbacks of the discarded session.
            self._generation += 1
            self._reset()
            snap = self._snapshot_locked()

        if was_tracking:
            self._release(watch_id)
        self._publish(snap)

    def close(self) -> None:
        """Tear down: stop any running session and drop all observers."""
        self.stop()
        with self._lock:
            self._observers.clear()

    def __enter__(self) -> SessionTracker:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get_current_position(self) -> PositionSample | None:
        """One-shot fix from the provider, e.g. to centre a map before recording.

        Provider failures are stored in ``last_error`` and ``None`` is
        returned.  A STOPPED session is left untouched: the fix (or
        ``None``) is returned but neither ``current_position`` nor
        ``last_error`` changes and nothing is published.
        """
        try:
            sample = self._provider.get_current_position(self._cfg.watch_options())
        except LocationProviderError as exc:
            _logger.warning("Current position unavailable: %s", exc)
            with self._lock:
                if self._state is SessionState.STOPPED:
                    return None
                self._last_error = exc.error
                snap = self._snapshot_locked()
            self._publish(snap)
            return None

        with self._lock:
            if self._state is SessionState.STOPPED:
                return sample
            self._current = sample
            snap = self._snapshot_locked()
        self._publish(snap)
        return sample

    # ------------------------------------------------------------------
    # Provider / timer callbacks
    # ------------------------------------------------------------------

    def _on_fix(self, generation: int, sample: PositionSample) -> None:
        with self._lock:
            if not self._accepts(generation):
                _logger.debug("Dropped fix for inactive session %d", generation)
                return
            self._current = sample
            if self._keeps(sample):
                self._path.append(sample)
            snap = self._snapshot_locked()
        self._publish(snap)

    def _on_error(self, generation: int, error: LocationError) -> None:
        with self._lock:
            if not self._accepts(generation):
                return
            self._last_error = error
            snap = self._snapshot_locked()
        _logger.warning("Location error during walk (%s): %s", error.code.value, error.message)
        self._publish(snap)

    def _on_tick(self, generation: int) -> None:
        with self._lock:
            if not self._accepts(generation):
                return
            self._elapsed_s += 1
            snap = self._snapshot_locked()
        self._publish(snap)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _accepts(self, generation: int) -> bool:
        return self._state is SessionState.TRACKING and generation == self._generation

    def _keeps(self, sample: PositionSample) -> bool:
        """Apply the optional minimum-movement policy."""
        if self._cfg.min_movement_m <= 0 or not self._path:
            return True
        last = self._path[-1]
        moved = haversine_m(last.latitude, last.longitude, sample.latitude, sample.longitude)
        return moved >= self._cfg.min_movement_m

    def _provider_available(self) -> bool:
        try:
            return bool(self._provider.is_available())
        except Exception as exc:
            _logger.warning("Location availability check failed: %s", exc)
            return False

    def _reset(self) -> None:
        self._state = SessionState.IDLE
        self._path = []
        self._current = None
        self._elapsed_s = 0
        self._started_at_ms = None
        self._last_error = None

    def _release(self, watch_id: int | None) -> None:
        """Unsubscribe from the provider and cancel the timer.

        Runs outside the lock so a provider or timer thread blocked on the
        lock can finish; its callback is then dropped by ``_accepts``.
        """
        if watch_id is not None:
            self._provider.clear_watch(watch_id)
        self._timer.cancel()

    def _snapshot_locked(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            state=self._state,
            current_position=self._current,
            path=tuple(self._path),
            distance_m=path_distance_m(self._path),
            elapsed_s=self._elapsed_s,
            started_at_ms=self._started_at_ms,
            last_error=self._last_error,
        )

    def _publish(self, snap: TrackerSnapshot) -> None:
        with self._lock:
            observers = list(self._observers)
        for cb in observers:
            try:
                cb(snap)
            except Exception:
                _logger.exception("Tracker observer raised")
