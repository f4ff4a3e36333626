"""GpsdLocationProvider — location fixes from a gpsd daemon over TCP.

gpsd streams newline-delimited JSON once ``?WATCH={"enable":true,"json":true}``
is sent.  Only ``TPV`` (time-position-velocity) reports carry positions;
``mode`` is 0/1 without a fix, 2 for 2D and 3 for 3D.

Each watch runs its own reader thread.  The thread reconnects on its own
after connection loss, reporting ``POSITION_UNAVAILABLE`` meanwhile, until
the watch is cleared.
"""

from __future__ import annotations

import itertools
import json
import logging
import socket
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from walk_tracker.tracking.errors import LocationProviderError
from walk_tracker.tracking.models import ErrorCode, LocationError, PositionSample, WatchOptions
from walk_tracker.tracking.provider import ErrorCallback, FixCallback, LocationProvider

_logger = logging.getLogger(__name__)

_WATCH_ENABLE = b'?WATCH={"enable":true,"json":true}\n'
_WATCH_DISABLE = b'?WATCH={"enable":false}\n'
_POLL_S = 0.5  # socket read granularity; bounds how long clear_watch waits


@dataclass
class GpsdConfig:
    """gpsd daemon connection settings."""

    host: str = "localhost"
    port: int = 2947
    connect_timeout_s: float = 3.0
    reconnect_delay_s: float = 5.0


# ---------------------------------------------------------------------------
# Message parsing
# ---------------------------------------------------------------------------


def _time_to_ms(value: object) -> int | None:
    if not isinstance(value, str):
        return None
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        return None


def parse_tpv(data: dict, now_ms: int) -> PositionSample | LocationError | None:
    """Interpret one gpsd JSON report.

    Returns a :class:`PositionSample` for a 2D/3D fix, a
    ``POSITION_UNAVAILABLE`` :class:`LocationError` for a TPV without a fix,
    and None for every other report class.  *now_ms* stamps fixes that lack
    a parseable ``time`` field.
    """
    if data.get("class") != "TPV":
        return None

    mode = data.get("mode", 0)
    if not isinstance(mode, int) or mode < 2 or "lat" not in data or "lon" not in data:
        return LocationError(ErrorCode.POSITION_UNAVAILABLE, "GPS has no fix")

    try:
        lat = float(data["lat"])
        lon = float(data["lon"])
    except (TypeError, ValueError):
        _logger.warning("Malformed TPV report: %s", data)
        return None

    captured = _time_to_ms(data.get("time"))
    return PositionSample(
        latitude=lat,
        longitude=lon,
        captured_at_ms=captured if captured is not None else now_ms,
    )


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class _Watch:
    def __init__(self, on_fix: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> None:
        self.on_fix = on_fix
        self.on_error = on_error
        self.options = options
        self.stop_event = threading.Event()
        self.deliver_lock = threading.RLock()
        self.thread: threading.Thread | None = None

    def deliver(self, fn: Callable, arg) -> None:
        # Holding deliver_lock lets clear_watch wait out an in-flight callback.
        with self.deliver_lock:
            if not self.stop_event.is_set():
                fn(arg)


class GpsdLocationProvider(LocationProvider):
    """Location provider backed by gpsd.

    Parameters
    ----------
    config:
        Daemon address and retry settings.
    connect:
        ``(address, timeout) -> socket`` factory.  Defaults to
        :func:`socket.create_connection`; injected for testability.
    clock:
        Returns epoch milliseconds for fixes without a timestamp.
    """

    def __init__(
        self,
        config: GpsdConfig | None = None,
        connect: Callable[..., socket.socket] | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.config = config or GpsdConfig()
        self._connect = connect or socket.create_connection
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._watches: dict[int, _Watch] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # LocationProvider API
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        """True if gpsd accepts a TCP connection."""
        try:
            sock = self._open()
        except OSError as exc:
            _logger.warning(
                "gpsd not reachable at %s:%d: %s", self.config.host, self.config.port, exc
            )
            return False
        sock.close()
        return True

    def get_current_position(self, options: WatchOptions | None = None) -> PositionSample:
        opts = options or WatchOptions()
        try:
            sock = self._open()
        except OSError as exc:
            raise LocationProviderError.from_code(
                ErrorCode.UNAVAILABLE, f"gpsd not reachable: {exc}"
            ) from exc

        deadline = time.monotonic() + opts.timeout_s
        try:
            sock.sendall(_WATCH_ENABLE)
            sock.settimeout(_POLL_S)
            for report in self._reports(sock, deadline):
                if isinstance(report, PositionSample):
                    return report
        except OSError as exc:
            raise LocationProviderError.from_code(
                ErrorCode.POSITION_UNAVAILABLE, f"GPS signal lost: {exc}"
            ) from exc
        finally:
            sock.close()

        raise LocationProviderError.from_code(
            ErrorCode.TIMEOUT, f"No GPS fix within {opts.timeout_s:.0f} s"
        )

    def watch_position(
        self,
        on_fix: FixCallback,
        on_error: ErrorCallback,
        options: WatchOptions | None = None,
    ) -> int:
        watch = _Watch(on_fix, on_error, options or WatchOptions())
        with self._lock:
            watch_id = next(self._ids)
            self._watches[watch_id] = watch
        watch.thread = threading.Thread(
            target=self._run, args=(watch,), daemon=True, name=f"GpsdWatch-{watch_id}"
        )
        watch.thread.start()
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        with self._lock:
            watch = self._watches.pop(watch_id, None)
        if watch is None:
            return
        watch.stop_event.set()
        # Wait for any callback in progress; none can start afterwards.
        with watch.deliver_lock:
            pass
        if watch.thread is not None and watch.thread is not threading.current_thread():
            watch.thread.join(timeout=_POLL_S * 4)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _open(self) -> socket.socket:
        return self._connect(
            (self.config.host, self.config.port), self.config.connect_timeout_s
        )

    def _reports(self, sock: socket.socket, deadline: float | None = None, stop_event=None):
        """Yield parsed reports from *sock* until *deadline* or *stop_event*.

        Raises ``ConnectionError`` when gpsd closes the connection.
        """
        buf = b""
        while deadline is None or time.monotonic() < deadline:
            if stop_event is not None and stop_event.is_set():
                return
            try:
                chunk = sock.recv(4096)
            except socket.timeout:
                yield None
                continue
            if not chunk:
                raise ConnectionError("gpsd closed the connection")
            buf += chunk
            *lines, buf = buf.split(b"\n")
            for line in lines:
                if not line.strip():
                    continue
                try:
                    data = json.loads(line.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                    _logger.warning("gpsd JSON parse error: %s", exc)
                    continue
                if isinstance(data, dict):
                    yield parse_tpv(data, self._clock())

    def _run(self, watch: _Watch) -> None:
        timeout_s = watch.options.timeout_s
        while not watch.stop_event.is_set():
            try:
                sock = self._open()
            except OSError as exc:
                _logger.warning("gpsd connection failed: %s", exc)
                watch.deliver(
                    watch.on_error,
                    LocationError(ErrorCode.POSITION_UNAVAILABLE, f"gpsd not reachable: {exc}"),
                )
                watch.stop_event.wait(self.config.reconnect_delay_s)
                continue

            _logger.info("Connected to gpsd at %s:%d", self.config.host, self.config.port)
            last_fix = time.monotonic()
            try:
                sock.sendall(_WATCH_ENABLE)
                sock.settimeout(min(_POLL_S, timeout_s))
                for report in self._reports(sock, stop_event=watch.stop_event):
                    if isinstance(report, PositionSample):
                        last_fix = time.monotonic()
                        watch.deliver(watch.on_fix, report)
                    elif isinstance(report, LocationError):
                        watch.deliver(watch.on_error, report)
                    if time.monotonic() - last_fix >= timeout_s:
                        last_fix = time.monotonic()
                        watch.deliver(
                            watch.on_error,
                            LocationError(
                                ErrorCode.TIMEOUT, f"No GPS fix within {timeout_s:.0f} s"
                            ),
                        )
            except OSError as exc:
                if watch.stop_event.is_set():
                    break
                _logger.warning("gpsd stream error: %s, reconnecting...", exc)
                watch.deliver(
                    watch.on_error,
                    LocationError(ErrorCode.POSITION_UNAVAILABLE, f"GPS signal lost: {exc}"),
                )
                watch.stop_event.wait(self.config.reconnect_delay_s)
            finally:
                try:
                    sock.sendall(_WATCH_DISABLE)
                except OSError:
                    _logger.debug("gpsd WATCH disable not sent")
                sock.close()
