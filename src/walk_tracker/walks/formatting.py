"""Human-readable distance and duration strings."""

from __future__ import annotations


def format_distance(meters: float) -> str:
    """``850m`` below one kilometre, ``1.23km`` from there on."""
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.2f}km"


def format_duration(seconds: int) -> str:
    """``1h 5m``, ``3m 20s`` or ``45s``; the largest unit drops the smallest."""
    seconds = int(seconds)
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
