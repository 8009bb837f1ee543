"""
Mirror tables - durable copy of the latest published snapshot.

The mirror is rewritten wholesale each cycle, so rows here always
describe exactly one snapshot (the one named in mirror_state).

Design notes:
- One flight_states row per entity key
- trail_points rows keyed by (entity_key, seq), seq 0 = oldest
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Float, Integer, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from simtraffic.models.base import Base


class FlightRecord(Base):
    """Latest observation for one tracked aircraft."""

    __tablename__ = 'flight_states'

    # NETWORK:identity, e.g. 'VATSIM:1234567'
    entity_key: Mapped[str] = mapped_column(
        String(96),
        primary_key=True,
        comment='Resolved entity key'
    )

    network: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        index=True,
        comment='Source network'
    )

    callsign: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        index=True,
        comment='Flight callsign'
    )

    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    altitude: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Altitude in feet'
    )
    ground_speed: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Ground speed in knots'
    )
    heading: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    aircraft_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    departure: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    arrival: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)

    observed_at: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Source-reported unix timestamp'
    )
    first_seen: Mapped[float] = mapped_column(Float, nullable=False)
    last_seen: Mapped[float] = mapped_column(Float, nullable=False)

    cycle: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment='Cycle that produced this row'
    )

    def __repr__(self) -> str:
        return f'<FlightRecord {self.entity_key} {self.callsign or "?"}>'


class TrailPointRecord(Base):
    """One point of a mirrored trail."""

    __tablename__ = 'trail_points'

    entity_key: Mapped[str] = mapped_column(String(96), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, primary_key=True)

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    altitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    timestamp: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        Index('ix_trail_points_time', 'entity_key', 'timestamp'),
    )

    def __repr__(self) -> str:
        return f'<TrailPointRecord {self.entity_key}#{self.seq} @ {self.timestamp}>'


class MirrorState(Base):
    """Single-row table recording which cycle the mirror holds."""

    __tablename__ = 'mirror_state'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cycle: Mapped[int] = mapped_column(Integer, nullable=False)
    written_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        comment='When the mirror was last rewritten'
    )
