"""
Fleet and trail analysis using NumPy.

Works only on what the store already holds: the current snapshot and
each aircraft's bounded trail. Nothing here reaches back further than
the trail window.

1. Fleet statistics: counts per network, altitude/speed distribution
2. Trend detection: linear regression of altitude over the trail
3. Path metrics: trail span and great-circle path length
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict

import numpy as np

from simtraffic.models.observation import EntityState, StoreSnapshot

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


class TrendDirection(str, Enum):
    """Trend direction classification."""
    INCREASING = 'increasing'
    STABLE = 'stable'
    DECREASING = 'decreasing'
    UNKNOWN = 'unknown'


@dataclass
class TrailAnalytics:
    """Derived metrics for one aircraft's trail."""
    key: str
    points: int
    span_seconds: float
    path_length_km: float
    altitude_trend: TrendDirection = TrendDirection.UNKNOWN
    altitude_rate_fpm: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            'points': self.points,
            'span_seconds': round(self.span_seconds, 1),
            'path_length_km': round(self.path_length_km, 2),
            'altitude_trend': self.altitude_trend.value,
            'altitude_rate_fpm': round(self.altitude_rate_fpm) if self.altitude_rate_fpm is not None else None,
        }


def haversine_km(lat1: np.ndarray, lon1: np.ndarray, lat2: np.ndarray, lon2: np.ndarray) -> np.ndarray:
    """Vectorized great-circle distance in kilometers."""
    lat1, lon1, lat2, lon2 = map(np.radians, (lat1, lon1, lat2, lon2))
    a = (
        np.sin((lat2 - lat1) / 2) ** 2 +
        np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def _describe(values: np.ndarray) -> Optional[dict]:
    if values.size == 0:
        return None
    return {
        'mean': float(np.mean(values)),
        'min': float(np.min(values)),
        'max': float(np.max(values)),
        'std': float(np.std(values)),
    }


class FleetAnalyzer:
    """
    Computes statistics over a published snapshot.

    Configuration:
    - min_samples: Minimum trail points for a trend (default 3)
    - trend_threshold_fpm: Altitude rate below which a trail is level
    """

    def __init__(self, min_samples: int = 3, trend_threshold_fpm: float = 200.0):
        self.min_samples = min_samples
        self.trend_threshold_fpm = trend_threshold_fpm

    def analyze_trail(self, state: EntityState) -> TrailAnalytics:
        """Compute path and altitude-trend metrics for one aircraft."""
        trail = state.trail
        analytics = TrailAnalytics(
            key=state.key,
            points=len(trail),
            span_seconds=0.0,
            path_length_km=0.0,
        )
        if len(trail) < 2:
            return analytics

        timestamps = np.array([p.timestamp for p in trail], dtype=np.float64)
        lats = np.array([p.latitude for p in trail], dtype=np.float64)
        lons = np.array([p.longitude for p in trail], dtype=np.float64)
        altitudes = np.array(
            [p.altitude if p.altitude is not None else np.nan for p in trail],
            dtype=np.float64,
        )

        analytics.span_seconds = float(timestamps[-1] - timestamps[0])
        analytics.path_length_km = float(np.sum(haversine_km(lats[:-1], lons[:-1], lats[1:], lons[1:])))

        valid = ~np.isnan(altitudes)
        if valid.sum() < self.min_samples:
            return analytics

        t = timestamps[valid] - timestamps[valid][0]
        if np.ptp(t) == 0:
            return analytics

        # Linear regression: altitude (ft) = slope * t (s) + intercept
        try:
            slope, _ = np.polyfit(t, altitudes[valid], 1)
        except np.linalg.LinAlgError:
            return analytics

        rate_fpm = float(slope * 60.0)
        analytics.altitude_rate_fpm = rate_fpm
        if rate_fpm > self.trend_threshold_fpm:
            analytics.altitude_trend = TrendDirection.INCREASING
        elif rate_fpm < -self.trend_threshold_fpm:
            analytics.altitude_trend = TrendDirection.DECREASING
        else:
            analytics.altitude_trend = TrendDirection.STABLE
        return analytics

    def get_fleet_statistics(self, snapshot: StoreSnapshot) -> dict:
        """
        Compute aggregate statistics across all tracked aircraft.

        Returns summary metrics for the entire snapshot.
        """
        states = snapshot.values()
        if not states:
            return {
                'count': 0,
                'by_network': {},
                'altitude': None,
                'speed': None,
                'trail_length': None,
                'without_position': 0,
            }

        by_network: Dict[str, int] = {}
        for state in states:
            network = state.latest.source
            by_network[network] = by_network.get(network, 0) + 1

        altitudes = np.array(
            [s.latest.altitude for s in states if s.latest.altitude is not None],
            dtype=np.float64,
        )
        speeds = np.array(
            [s.latest.ground_speed for s in states if s.latest.ground_speed is not None],
            dtype=np.float64,
        )
        trail_lengths = np.array([len(s.trail) for s in states], dtype=np.float64)

        return {
            'count': len(states),
            'by_network': by_network,
            'altitude': _describe(altitudes),
            'speed': _describe(speeds),
            'trail_length': _describe(trail_lengths),
            'without_position': sum(1 for s in states if not s.latest.has_position()),
        }
