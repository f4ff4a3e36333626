"""Device location providers — interface plus an in-process simulated provider."""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Callable, Iterable

from walk_tracker.tracking.errors import LocationProviderError
from walk_tracker.tracking.models import ErrorCode, LocationError, PositionSample, WatchOptions

FixCallback = Callable[[PositionSample], None]
ErrorCallback = Callable[[LocationError], None]


class LocationProvider:
    """Interface consumed by :class:`~walk_tracker.tracking.tracker.SessionTracker`.

    Implementations deliver fixes asynchronously to ``on_fix`` and failures
    to ``on_error`` for every active watch.  ``clear_watch`` must be
    synchronous: once it returns, no callback of that watch may run.
    """

    def is_available(self) -> bool:
        """True if the location capability exists on this device."""
        raise NotImplementedError

    def get_current_position(self, options: WatchOptions | None = None) -> PositionSample:
        """Return a single fresh fix.

        Raises
        ------
        LocationProviderError
            If no fix can be obtained.
        """
        raise NotImplementedError

    def watch_position(
        self,
        on_fix: FixCallback,
        on_error: ErrorCallback,
        options: WatchOptions | None = None,
    ) -> int:
        """Begin a continuous subscription and return its watch id."""
        raise NotImplementedError

    def clear_watch(self, watch_id: int) -> None:
        """Cancel the subscription *watch_id*.  Unknown ids are ignored."""
        raise NotImplementedError


class SimulatedLocationProvider(LocationProvider):
    """Provider driven by explicit calls, for tests and replaying recorded walks.

    Parameters
    ----------
    available:
        Value returned by :meth:`is_available`.
    """

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self._watches: dict[int, tuple[FixCallback, ErrorCallback, WatchOptions]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._last_fix: PositionSample | None = None

    # ------------------------------------------------------------------
    # LocationProvider API
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        return self.available

    def get_current_position(self, options: WatchOptions | None = None) -> PositionSample:
        if not self.available:
            raise LocationProviderError.from_code(
                ErrorCode.UNAVAILABLE, "Location services are not supported"
            )
        if self._last_fix is None:
            raise LocationProviderError.from_code(
                ErrorCode.POSITION_UNAVAILABLE, "No position has been emitted yet"
            )
        return self._last_fix

    def watch_position(
        self,
        on_fix: FixCallback,
        on_error: ErrorCallback,
        options: WatchOptions | None = None,
    ) -> int:
        with self._lock:
            watch_id = next(self._ids)
            self._watches[watch_id] = (on_fix, on_error, options or WatchOptions())
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        with self._lock:
            self._watches.pop(watch_id, None)

    # ------------------------------------------------------------------
    # Simulation controls
    # ------------------------------------------------------------------

    @property
    def active_watches(self) -> int:
        """Number of subscriptions not yet cleared."""
        return len(self._watches)

    def emit_fix(self, sample: PositionSample) -> None:
        """Deliver *sample* to every active watch."""
        self._last_fix = sample
        for on_fix, _, _ in self._callbacks():
            on_fix(sample)

    def emit_error(self, error: LocationError) -> None:
        """Deliver *error* to every active watch."""
        for _, on_error, _ in self._callbacks():
            on_error(error)

    def replay(
        self,
        samples: Iterable[PositionSample],
        speed: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Emit every sample in order; return how many were emitted.

        With *speed* set, sleeps between samples for the gap between their
        ``captured_at_ms`` divided by *speed* (1.0 = real time), so a wall
        clock timer sees the walk last as long as it was recorded.
        Out-of-order timestamps do not sleep.
        """
        if speed is not None and speed <= 0:
            raise ValueError(f"speed must be > 0, got {speed}")
        count = 0
        previous: PositionSample | None = None
        for sample in samples:
            if speed is not None and previous is not None:
                gap_ms = sample.captured_at_ms - previous.captured_at_ms
                if gap_ms > 0:
                    sleep(gap_ms / 1000 / speed)
            self.emit_fix(sample)
            previous = sample
            count += 1
        return count

    def _callbacks(self) -> list[tuple[FixCallback, ErrorCallback, WatchOptions]]:
        with self._lock:
            return list(self._watches.values())
