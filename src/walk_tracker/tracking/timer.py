"""IntervalTimer — fires a callback at a fixed period on a daemon thread."""

from __future__ import annotations

import threading
from collections.abc import Callable


class IntervalTimer:
    """Periodic timer used for the elapsed-seconds counter.

    Parameters
    ----------
    interval_s:
        Period between callbacks in seconds.
    """

    def __init__(self, interval_s: float = 1.0) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._interval = interval_s
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    def start(self, callback: Callable[[], None]) -> None:
        """Start calling *callback* every interval.  A running timer is restarted."""
        self.cancel()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(callback, self._stop_event),
            daemon=True,
            name="ElapsedTimer",
        )
        self._thread.start()

    def cancel(self) -> None:
        """Stop the timer and join its thread.  Safe to call repeatedly."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _run(self, callback: Callable[[], None], stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            callback()
