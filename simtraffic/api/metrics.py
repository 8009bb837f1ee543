"""
Metrics and status API endpoints.

Provides endpoints for:
- GET /metrics/fleet - Fleet-wide statistics over the current snapshot
- GET /metrics/status - Refresh loop, store, stream, and mirror status
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify, current_app

from simtraffic.analytics import FleetAnalyzer

logger = logging.getLogger(__name__)

metrics_bp = Blueprint('metrics', __name__, url_prefix='/metrics')


@metrics_bp.route('/fleet', methods=['GET'])
def get_fleet_metrics():
    """
    Get aggregate statistics for all tracked aircraft.

    Returns:
    - Aircraft count by network
    - Altitude and ground speed distribution statistics
    - Trail length distribution
    """
    start_time = time.perf_counter()

    snapshot = current_app.config['STORE'].snapshot()
    stats = FleetAnalyzer().get_fleet_statistics(snapshot)

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'fleet': stats,
        'cycle': snapshot.cycle,
        'generated_at': snapshot.generated_at_iso,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@metrics_bp.route('/status', methods=['GET'])
def get_system_status():
    """
    Get system health and status information.

    Returns:
    - Refresh loop status and per-source outcome of the last cycle
    - Store statistics
    - Subscriber statistics
    - Mirror status
    """
    store = current_app.config['STORE']
    scheduler = current_app.config.get('SCHEDULER')
    hub = current_app.config.get('HUB')

    scheduler_stats = scheduler.stats if scheduler else {'running': False}
    mirror = scheduler.mirror if scheduler else None
    mirror_stats = mirror.stats if mirror else {'enabled': False}

    sources = scheduler_stats.get('sources') or {}
    sources_ok = all(status['ok'] for status in sources.values())
    healthy = bool(scheduler_stats.get('running')) and sources_ok and not mirror_stats.get('dirty')

    return jsonify({
        'status': 'healthy' if healthy else 'degraded',
        'refresh': scheduler_stats,
        'store': store.stats,
        'stream': hub.stats if hub else {'subscribers': 0},
        'mirror': mirror_stats,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })
