"""Tracking exceptions."""

from __future__ import annotations

from walk_tracker.tracking.models import ErrorCode, LocationError


class TrackingError(Exception):
    """Base class for walk-tracking errors."""


class LocationProviderError(TrackingError):
    """Raised by one-shot provider calls; carries a :class:`LocationError`."""

    def __init__(self, error: LocationError) -> None:
        super().__init__(error.message)
        self.error = error

    @classmethod
    def from_code(cls, code: ErrorCode, message: str) -> LocationProviderError:
        return cls(LocationError(code=code, message=message))
