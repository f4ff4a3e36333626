"""Live walk tracking from a device location provider.

Public API
----------
SessionTracker          - records one walking session (IDLE → TRACKING → STOPPED)
TrackerConfig           - tracker settings
TrackerSnapshot         - read-only session state published to observers
PositionSample          - one location fix
LocationProvider        - provider interface
SimulatedLocationProvider - in-process provider for tests and replay
GpsdLocationProvider    - provider backed by a gpsd daemon
IntervalTimer           - periodic elapsed-time timer
"""

from walk_tracker.tracking.errors import LocationProviderError, TrackingError
from walk_tracker.tracking.gpsd_provider import GpsdConfig, GpsdLocationProvider
from walk_tracker.tracking.models import (
    ErrorCode,
    LocationError,
    PositionSample,
    SessionState,
    TrackerSnapshot,
    WatchOptions,
)
from walk_tracker.tracking.provider import LocationProvider, SimulatedLocationProvider
from walk_tracker.tracking.timer import IntervalTimer
from walk_tracker.tracking.tracker import SessionTracker, TrackerConfig

__all__ = [
    "ErrorCode",
    "GpsdConfig",
    "GpsdLocationProvider",
    "IntervalTimer",
    "LocationError",
    "LocationProvider",
    "LocationProviderError",
    "PositionSample",
    "SessionState",
    "SessionTracker",
    "SimulatedLocationProvider",
    "TrackerConfig",
    "TrackerSnapshot",
    "TrackingError",
    "WatchOptions",
]
