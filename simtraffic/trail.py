"""
Bounded per-aircraft position history.

A trail keeps at most max_points positions, none older than
max_age_seconds relative to the time of the last append or prune.
Points are kept oldest-first with non-decreasing timestamps.

Memory budget: 120 points x ~100 bytes x a few thousand pilots
stays in the tens of megabytes.
"""

import logging
from collections import deque
from typing import Deque, Optional, Tuple

from simtraffic.models.observation import Observation, TrailPoint

logger = logging.getLogger(__name__)


def point_from_observation(obs: Observation, fallback_timestamp: float) -> Optional[TrailPoint]:
    """
    Build a trail point from an observation.

    Uses the source-reported timestamp when there is one, else the
    cycle time. Returns None when the observation has no position.
    """
    if not obs.has_position():
        return None
    timestamp = obs.observed_at if obs.observed_at is not None else fallback_timestamp
    return TrailPoint(
        latitude=obs.latitude,
        longitude=obs.longitude,
        altitude=obs.altitude,
        timestamp=timestamp,
    )


class TrailBuffer:
    """
    Fixed-capacity, time-windowed trail.

    Not thread-safe on its own: only the store's cycle logic mutates a
    buffer, and readers only ever see the tuple returned by snapshot().
    """

    def __init__(self, max_points: int = 120, max_age_seconds: float = 3600):
        if max_points < 1:
            raise ValueError('max_points must be at least 1')
        if max_age_seconds <= 0:
            raise ValueError('max_age_seconds must be positive')
        self.max_points = max_points
        self.max_age_seconds = max_age_seconds
        self._points: Deque[TrailPoint] = deque()

    def __len__(self) -> int:
        return len(self._points)

    @property
    def latest(self) -> Optional[TrailPoint]:
        return self._points[-1] if self._points else None

    def append(self, point: TrailPoint, now: float) -> bool:
        """
        Add a point at the tail, then enforce both bounds.

        A point not strictly newer than the current tail is rejected, so
        re-reading an unchanged source position never duplicates it.

        Returns True if the point was kept.
        """
        tail = self.latest
        if tail is not None and point.timestamp <= tail.timestamp:
            logger.debug(f'Rejected trail point at {point.timestamp} (tail at {tail.timestamp})')
            accepted = False
        else:
            self._points.append(point)
            accepted = True

        while len(self._points) > self.max_points:
            self._points.popleft()

        self.prune(now)
        return accepted and bool(self._points) and self._points[-1] is point

    def prune(self, now: float) -> int:
        """
        Drop points at or before now - max_age_seconds.

        Returns count of points removed.
        """
        cutoff = now - self.max_age_seconds
        removed = 0
        while self._points and self._points[0].timestamp <= cutoff:
            self._points.popleft()
            removed += 1
        return removed

    def copy(self) -> 'TrailBuffer':
        clone = TrailBuffer(self.max_points, self.max_age_seconds)
        clone._points = deque(self._points)
        return clone

    def snapshot(self) -> Tuple[TrailPoint, ...]:
        """Copy of the current trail, oldest first."""
        return tuple(self._points)
