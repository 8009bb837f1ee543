"""
Data models for SimTraffic.

Immutable value types shared by ingestion, store, and API, plus the
SQLAlchemy tables backing the optional durable mirror.
"""

from simtraffic.models.observation import (
    Observation,
    TrailPoint,
    EntityState,
    SourceStatus,
    StoreSnapshot,
)
from simtraffic.models.base import Base, create_db_engine, create_session_factory, init_db
from simtraffic.models.flight_record import FlightRecord, TrailPointRecord, MirrorState

__all__ = [
    'Observation',
    'TrailPoint',
    'EntityState',
    'SourceStatus',
    'StoreSnapshot',
    'Base',
    'create_db_engine',
    'create_session_factory',
    'init_db',
    'FlightRecord',
    'TrailPointRecord',
    'MirrorState',
]
