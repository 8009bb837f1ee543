"""
In-memory value types for the aggregation pipeline.

Everything here is immutable. Observations live for one refresh cycle;
EntityState and StoreSnapshot are what readers get handed, so nothing a
reader holds can change underneath it when the next cycle publishes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Optional, Tuple, Mapping, Dict, FrozenSet


@dataclass(frozen=True)
class Observation:
    """
    One pilot as reported by one feed in one cycle.

    Any field other than source may be missing. Adapters resolve their
    payload's fallbacks (e.g. IVAO's lastTrack block) before building this,
    so downstream code only ever reads these named fields.
    """
    source: str

    # Source-native identity, in resolver precedence order
    cid: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    callsign: Optional[str] = None

    # Position
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None  # feet

    # Telemetry
    ground_speed: Optional[float] = None  # knots
    heading: Optional[float] = None
    transponder: Optional[str] = None

    # Flight plan / pilot
    aircraft_type: Optional[str] = None
    departure: Optional[str] = None
    arrival: Optional[str] = None
    route: Optional[str] = None
    flight_rules: Optional[str] = None  # IFR / VFR
    pilot_name: Optional[str] = None

    # Unix timestamp reported by the source, if any
    observed_at: Optional[float] = None

    def has_position(self) -> bool:
        """Check if this observation can become a trail point."""
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class TrailPoint:
    """A single position in an aircraft's trail."""
    latitude: float
    longitude: float
    altitude: Optional[float]
    timestamp: float

    def to_dict(self) -> dict:
        return {
            'lat': self.latitude,
            'lon': self.longitude,
            'alt': self.altitude,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class EntityState:
    """
    Published state of one tracked aircraft.

    Combines the most recent observation with the trail as it stood
    when the cycle was published.
    """
    key: str
    latest: Observation
    trail: Tuple[TrailPoint, ...]
    first_seen: float
    last_seen: float

    def to_dict(self, include_trail: bool = True) -> dict:
        """Convert to JSON-serializable dict for API responses."""
        obs = self.latest
        result = {
            'id': self.key,
            'network': obs.source,
            'callsign': obs.callsign,
            'identity': {
                'cid': obs.cid,
                'user_id': obs.user_id,
                'session_id': obs.session_id,
            },
            'position': {
                'latitude': obs.latitude,
                'longitude': obs.longitude,
                'altitude': obs.altitude,
            },
            'telemetry': {
                'ground_speed': obs.ground_speed,
                'heading': obs.heading,
                'transponder': obs.transponder,
            },
            'flight_plan': {
                'aircraft_type': obs.aircraft_type,
                'departure': obs.departure,
                'arrival': obs.arrival,
                'route': obs.route,
                'flight_rules': obs.flight_rules,
            },
            'pilot_name': obs.pilot_name,
            'timestamps': {
                'observed_at': obs.observed_at,
                'first_seen': self.first_seen,
                'last_seen': self.last_seen,
            },
        }
        if include_trail:
            result['trail'] = [point.to_dict() for point in self.trail]
        return result


@dataclass(frozen=True)
class SourceStatus:
    """Outcome of one feed fetch within a cycle."""
    source: str
    ok: bool
    count: int = 0
    error: Optional[str] = None
    duration_ms: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            'ok': self.ok,
            'count': self.count,
            'error': self.error,
            'duration_ms': round(self.duration_ms, 1) if self.duration_ms is not None else None,
        }


def _frozen_mapping(value: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True)
class StoreSnapshot:
    """
    Consistent view of the store after one completed cycle.

    Cycle 0 is the empty snapshot served before the first cycle finishes.
    added/updated/removed describe how this snapshot differs from the
    previous one and drive incremental stream messages.
    """
    cycle: int = 0
    generated_at: Optional[float] = None
    entities: Mapping[str, EntityState] = field(default_factory=dict)
    sources: Mapping[str, SourceStatus] = field(default_factory=dict)
    added: FrozenSet[str] = frozenset()
    updated: FrozenSet[str] = frozenset()
    removed: FrozenSet[str] = frozenset()

    def __post_init__(self):
        # Frozen dataclass: bypass __setattr__ to wrap the mappings read-only
        object.__setattr__(self, 'entities', _frozen_mapping(self.entities))
        object.__setattr__(self, 'sources', _frozen_mapping(self.sources))

    def __len__(self) -> int:
        return len(self.entities)

    @property
    def is_initialized(self) -> bool:
        return self.cycle > 0

    def get(self, key: str) -> Optional[EntityState]:
        return self.entities.get(key)

    def values(self) -> Tuple[EntityState, ...]:
        return tuple(self.entities.values())

    @property
    def generated_at_iso(self) -> Optional[str]:
        if self.generated_at is None:
            return None
        return datetime.fromtimestamp(self.generated_at, tz=timezone.utc).isoformat()

    def source_summary(self) -> Dict[str, dict]:
        return {name: status.to_dict() for name, status in self.sources.items()}
