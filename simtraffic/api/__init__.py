"""
API module for SimTraffic.

Provides REST endpoints for:
- Flight data (current snapshot, individual flights, live stream)
- Fleet metrics and system status
"""

from simtraffic.api.flights import flights_bp
from simtraffic.api.metrics import metrics_bp

__all__ = ['flights_bp', 'metrics_bp']
