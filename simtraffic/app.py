"""
SimTraffic Flask Application.

Main entry point for the web application. Initializes:
- Aggregation store and subscriber hub
- Feed adapters and refresh scheduler
- Optional durable mirror
- API routes

Usage:
    python -m simtraffic.app

Or with gunicorn (single worker; the store lives in-process):
    gunicorn -w 1 --threads 8 'simtraffic.app:create_app()'
"""

import atexit
import logging
import signal
import sys
from typing import Optional

from flask import Flask
from flask_cors import CORS

from simtraffic.config import config
from simtraffic.api import flights_bp, metrics_bp
from simtraffic.ingestion.scheduler import RefreshScheduler, build_adapters
from simtraffic.persistence import StoreMirror
from simtraffic.publisher import SubscriberHub
from simtraffic.store import AggregationStore

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def build_scheduler() -> RefreshScheduler:
    """Wire store, hub, adapters, and mirror from configuration."""
    store = AggregationStore()
    hub = SubscriberHub(queue_size=config.stream.queue_size)
    mirror = StoreMirror.from_config()
    if mirror:
        logger.info('Durable mirror enabled')

    return RefreshScheduler(
        adapters=build_adapters(),
        store=store,
        hub=hub,
        mirror=mirror,
    )


def create_app(
    start_scheduler: bool = True,
    scheduler: Optional[RefreshScheduler] = None,
) -> Flask:
    """
    Application factory for Flask.

    Args:
        start_scheduler: Whether to start the background refresh loop.
                         Set to False for testing.
        scheduler: Pre-built scheduler (store, hub and adapters included).
                   Built from configuration if None.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    # Enable CORS for the browser map clients
    CORS(app, resources={r'/*': {'origins': '*'}})

    scheduler = scheduler or build_scheduler()
    app.config['SCHEDULER'] = scheduler
    app.config['STORE'] = scheduler.store
    app.config['HUB'] = scheduler.hub
    app.config['STREAM_KEEPALIVE_SECONDS'] = config.stream.keepalive_seconds

    # Register API blueprints
    app.register_blueprint(flights_bp)
    app.register_blueprint(metrics_bp)

    if start_scheduler:
        scheduler.start_background()
        atexit.register(scheduler.stop)
        logger.info(
            f'Refresh started: every {scheduler.refresh_period:g}s, '
            f'trail {scheduler.store.trail_max_points} points / '
            f'{scheduler.store.trail_max_age_seconds:g}s, '
            f'eviction {scheduler.store.eviction.describe()}'
        )

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()
    scheduler = app.config['SCHEDULER']

    def shutdown(signum, frame):
        logger.info(f'Received signal {signum}, shutting down')
        scheduler.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info(f'Starting SimTraffic on http://localhost:{config.port}')
    logger.info(f'Flights: http://localhost:{config.port}/flights')

    app.run(
        host='0.0.0.0',
        port=config.port,
        debug=config.debug,
        threaded=True,
        use_reloader=False,  # Disable reloader to prevent duplicate scheduler threads
    )


if __name__ == '__main__':
    run_development_server()
