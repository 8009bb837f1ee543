"""
Analytics module for SimTraffic.

NumPy statistics over the current snapshot:
- Fleet-wide distributions per network
- Altitude trend detection over each trail
- Trail span and path length
"""

from simtraffic.analytics.fleet import (
    FleetAnalyzer,
    TrailAnalytics,
    TrendDirection,
)

__all__ = [
    'FleetAnalyzer',
    'TrailAnalytics',
    'TrendDirection',
]
