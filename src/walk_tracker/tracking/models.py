"""Tracking data models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PositionSample:
    """A single location fix delivered by the device provider."""

    latitude: float
    """Latitude in degrees."""

    longitude: float
    """Longitude in degrees."""

    captured_at_ms: int
    """Capture time as epoch milliseconds."""


class SessionState(enum.Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    STOPPED = "stopped"


class ErrorCode(enum.Enum):
    """Location error categories, matching the browser geolocation codes."""

    UNAVAILABLE = "unavailable"
    """Location capability is absent or not permitted on the device."""

    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class LocationError:
    """Descriptor for a location failure, surfaced through ``last_error``."""

    code: ErrorCode
    message: str

    @property
    def is_fatal(self) -> bool:
        """True only for a missing location capability."""
        return self.code is ErrorCode.UNAVAILABLE


@dataclass(frozen=True)
class WatchOptions:
    """Options passed to ``LocationProvider.watch_position``."""

    high_accuracy: bool = True
    timeout_s: float = 10.0
    """Maximum wait for one fix before a TIMEOUT error is reported."""

    maximum_age_s: float = 0.0
    """Maximum age of a cached fix; 0 means every fix must be fresh."""


@dataclass(frozen=True)
class TrackerSnapshot:
    """Read-only view of a :class:`~walk_tracker.tracking.tracker.SessionTracker`."""

    state: SessionState
    current_position: PositionSample | None = None
    path: tuple[PositionSample, ...] = field(default_factory=tuple)
    distance_m: float = 0.0
    elapsed_s: int = 0
    started_at_ms: int | None = None
    last_error: LocationError | None = None

    @property
    def is_tracking(self) -> bool:
        return self.state is SessionState.TRACKING
