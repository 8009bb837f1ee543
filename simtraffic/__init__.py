"""
SimTraffic package.

Live traffic aggregator for the IVAO and VATSIM flight simulation networks,
built with Flask, requests, SQLAlchemy, and NumPy.

Modules:
    api/          REST and streaming endpoints for flights and system status
    models/       Observation/snapshot value types and the SQLAlchemy mirror tables
    ingestion/    Feed adapters, identity resolution, and the refresh scheduler
    analytics/    NumPy-based fleet statistics and trail analysis
    trail.py      Bounded per-aircraft position history
    store.py      Snapshot-swapping aggregation store
    publisher.py  Push delivery to streaming subscribers
    persistence.py Optional durable mirror of the published snapshot
    config.py     Centralized configuration from environment variables
"""

__version__ = '1.0.0'
