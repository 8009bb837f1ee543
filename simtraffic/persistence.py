"""
Optional durable mirror of the published snapshot.

After each cycle the scheduler hands the new snapshot to StoreMirror,
which rewrites the mirror tables in one transaction. The in-memory store
is already published by then, so a slow or failing database never delays
queries. A failed write leaves the mirror marked dirty; the next cycle
writes its own (newer) snapshot, which is the retry.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from simtraffic.config import config
from simtraffic.exceptions import PersistenceError
from simtraffic.models.base import create_db_engine, create_session_factory, init_db
from simtraffic.models.flight_record import FlightRecord, TrailPointRecord, MirrorState
from simtraffic.models.observation import StoreSnapshot

logger = logging.getLogger(__name__)


class StoreMirror:
    """Writes published snapshots to a SQL database via SQLAlchemy."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_db_engine(url, echo=echo)
        self.SessionLocal = create_session_factory(self.engine)

        self._initialized = False
        self.dirty = False
        self.last_written_cycle = 0
        self.last_error: Optional[str] = None
        self._write_count = 0
        self._error_count = 0

    @classmethod
    def from_config(cls) -> Optional['StoreMirror']:
        """Create the mirror if DATABASE_URL is configured, else None."""
        if not config.database.is_enabled:
            return None
        return cls(config.database.url, echo=config.debug)

    def _ensure_schema(self) -> None:
        if not self._initialized:
            init_db(self.engine)
            self._initialized = True

    def write(self, snapshot: StoreSnapshot) -> int:
        """
        Replace the mirror contents with this snapshot.

        Returns count of flight rows written.

        Raises:
            PersistenceError if the database write fails
        """
        start = time.perf_counter()

        flights = []
        points = []
        for state in snapshot.values():
            obs = state.latest
            flights.append({
                'entity_key': state.key,
                'network': obs.source,
                'callsign': obs.callsign,
                'latitude': obs.latitude,
                'longitude': obs.longitude,
                'altitude': obs.altitude,
                'ground_speed': obs.ground_speed,
                'heading': obs.heading,
                'aircraft_type': obs.aircraft_type,
                'departure': obs.departure,
                'arrival': obs.arrival,
                'observed_at': obs.observed_at,
                'first_seen': state.first_seen,
                'last_seen': state.last_seen,
                'cycle': snapshot.cycle,
            })
            for seq, point in enumerate(state.trail):
                points.append({
                    'entity_key': state.key,
                    'seq': seq,
                    'latitude': point.latitude,
                    'longitude': point.longitude,
                    'altitude': point.altitude,
                    'timestamp': point.timestamp,
                })

        try:
            self._ensure_schema()
            with self.SessionLocal() as session:
                session.execute(delete(TrailPointRecord))
                session.execute(delete(FlightRecord))
                if flights:
                    session.execute(FlightRecord.__table__.insert(), flights)
                if points:
                    session.execute(TrailPointRecord.__table__.insert(), points)
                session.merge(MirrorState(id=1, cycle=snapshot.cycle, written_at=datetime.now(timezone.utc)))
                session.commit()
        except SQLAlchemyError as e:
            self.dirty = True
            self.last_error = str(e)
            self._error_count += 1
            raise PersistenceError(f'mirror write for cycle {snapshot.cycle} failed: {e}') from e

        if self.dirty:
            logger.info(f'Mirror caught up at cycle {snapshot.cycle}')
        self.dirty = False
        self.last_error = None
        self.last_written_cycle = snapshot.cycle
        self._write_count += 1

        write_ms = (time.perf_counter() - start) * 1000
        logger.debug(f'Mirrored {len(flights)} flights, {len(points)} trail points in {write_ms:.0f}ms')
        return len(flights)

    def close(self) -> None:
        self.engine.dispose()

    @property
    def stats(self) -> dict:
        return {
            'enabled': True,
            'dirty': self.dirty,
            'last_written_cycle': self.last_written_cycle,
            'last_error': self.last_error,
            'writes': self._write_count,
            'errors': self._error_count,
        }
