"""
Aggregation store - the live world state.

Holds one working record per entity key (latest observation, trail,
first/last seen) and publishes an immutable StoreSnapshot after every
cycle.

Design rationale:
Readers never touch the working records. apply_cycle() merges and evicts
on the working set, builds a complete new snapshot, and replaces the
published reference in one assignment under the lock. A query therefore
sees either the whole previous cycle or the whole new one, and never
waits for network I/O or for a merge in progress.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Dict, Iterable, List, Mapping, Set, Callable

from simtraffic.config import config, EvictionConfig, TrailConfig, EVICTION_MODES
from simtraffic.exceptions import StoreConsistencyViolation
from simtraffic.ingestion.identity import resolve_entity_key
from simtraffic.models.observation import (
    Observation,
    EntityState,
    SourceStatus,
    StoreSnapshot,
)
from simtraffic.trail import TrailBuffer, point_from_observation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvictionPolicy:
    """
    When an entity that stopped reporting leaves the store.

    ttl:       evicted once now - last_seen >= stale_threshold_seconds
    immediate: evicted in the first cycle that does not observe it
    """
    mode: str = 'ttl'
    stale_threshold_seconds: float = 60.0

    def __post_init__(self):
        if self.mode not in EVICTION_MODES:
            raise ValueError(f'Unknown eviction mode: {self.mode!r}')
        if self.mode == 'ttl' and self.stale_threshold_seconds <= 0:
            raise ValueError('stale_threshold_seconds must be positive')

    @classmethod
    def immediate(cls) -> 'EvictionPolicy':
        return cls(mode='immediate')

    @classmethod
    def ttl(cls, seconds: float) -> 'EvictionPolicy':
        return cls(mode='ttl', stale_threshold_seconds=seconds)

    @classmethod
    def from_config(cls, eviction: EvictionConfig) -> 'EvictionPolicy':
        return cls(mode=eviction.mode, stale_threshold_seconds=eviction.stale_threshold_seconds)

    def is_expired(self, last_seen: float, now: float, observed_this_cycle: bool) -> bool:
        if observed_this_cycle:
            return False
        if self.mode == 'immediate':
            return True
        return now - last_seen >= self.stale_threshold_seconds

    def describe(self) -> str:
        if self.mode == 'immediate':
            return 'immediate'
        return f'ttl({self.stale_threshold_seconds:g}s)'


@dataclass
class _EntityRecord:
    """Working state for one entity. Only touched inside apply_cycle()."""
    key: str
    latest: Observation
    trail: TrailBuffer
    first_seen: float
    last_seen: float

    def copy(self) -> '_EntityRecord':
        return _EntityRecord(
            key=self.key,
            latest=self.latest,
            trail=self.trail.copy(),
            first_seen=self.first_seen,
            last_seen=self.last_seen,
        )

    def freeze(self) -> EntityState:
        return EntityState(
            key=self.key,
            latest=self.latest,
            trail=self.trail.snapshot(),
            first_seen=self.first_seen,
            last_seen=self.last_seen,
        )


@dataclass
class CycleResult:
    """Bookkeeping for one merge, logged and attached to the snapshot."""
    added: Set[str] = field(default_factory=set)
    updated: Set[str] = field(default_factory=set)
    removed: Set[str] = field(default_factory=set)
    points_appended: int = 0
    positionless: int = 0


class AggregationStore:
    """
    Snapshot-swapping store of tracked aircraft.

    apply_cycle() is the single mutation path and must only ever be run
    by one thread at a time (the refresh scheduler). snapshot() and get()
    may be called from any number of threads.
    """

    def __init__(
        self,
        trail_max_points: Optional[int] = None,
        trail_max_age_seconds: Optional[float] = None,
        eviction: Optional[EvictionPolicy] = None,
        clock: Callable[[], float] = time.time,
        trail_config: Optional[TrailConfig] = None,
    ):
        trail_config = trail_config or config.trail
        self.trail_max_points = trail_max_points or trail_config.max_points
        self.trail_max_age_seconds = trail_max_age_seconds or trail_config.max_age_seconds
        self.eviction = eviction or EvictionPolicy.from_config(config.eviction)
        self._clock = clock

        self._records: Dict[str, _EntityRecord] = {}
        self._snapshot = StoreSnapshot()
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    def snapshot(self) -> StoreSnapshot:
        """Most recently published snapshot. Never blocks on a merge."""
        with self._lock:
            return self._snapshot

    def get(self, key: str) -> Optional[EntityState]:
        return self.snapshot().get(key)

    def __len__(self) -> int:
        return len(self.snapshot())

    # -------------------------------------------------------------------------
    # Write side
    # -------------------------------------------------------------------------

    def apply_cycle(
        self,
        observations: Iterable[Observation],
        now: Optional[float] = None,
        sources: Optional[Mapping[str, SourceStatus]] = None,
    ) -> StoreSnapshot:
        """
        Merge one cycle's observations, evict, and publish.

        Args:
            observations: Every observation gathered this cycle, all sources
            now: Cycle time (unix seconds); defaults to the store clock
            sources: Per-source fetch outcome to attach to the snapshot

        Returns:
            The newly published snapshot.

        Raises:
            StoreConsistencyViolation if another cycle is merging.
        """
        if not self._write_lock.acquire(blocking=False):
            raise StoreConsistencyViolation('apply_cycle() called while another cycle is merging')

        try:
            now = self._clock() if now is None else now
            previous = self.snapshot()
            if previous.generated_at is not None and now < previous.generated_at:
                logger.warning(
                    f'Cycle clock went backwards ({now} < {previous.generated_at}); '
                    f'trail age bounds use the new time'
                )

            result = CycleResult()
            observed: Set[str] = set()

            # Merge into copies; an error mid-batch leaves the records untouched
            staged: Dict[str, _EntityRecord] = {}
            for obs in observations:
                key = resolve_entity_key(obs)
                self._merge(staged, key, obs, now, result)
                observed.add(key)
            self._records.update(staged)

            self._prune_and_evict(observed, now, result)

            snapshot = StoreSnapshot(
                cycle=previous.cycle + 1,
                generated_at=now,
                entities={key: record.freeze() for key, record in self._records.items()},
                sources=sources or {},
                added=frozenset(result.added),
                updated=frozenset(result.updated - result.added),
                removed=frozenset(result.removed),
            )

            with self._lock:
                self._snapshot = snapshot

            logger.info(
                f'Cycle {snapshot.cycle}: {len(snapshot)} tracked, '
                f'+{len(result.added)} new, -{len(result.removed)} evicted, '
                f'{result.points_appended} trail points, '
                f'{result.positionless} without position'
            )
            return snapshot
        finally:
            self._write_lock.release()

    def _merge(
        self,
        staged: Dict[str, _EntityRecord],
        key: str,
        obs: Observation,
        now: float,
        result: CycleResult,
    ) -> None:
        record = staged.get(key)
        if record is None and key in self._records:
            record = self._records[key].copy()
            staged[key] = record

        if record is None:
            record = _EntityRecord(
                key=key,
                latest=obs,
                trail=TrailBuffer(self.trail_max_points, self.trail_max_age_seconds),
                first_seen=now,
                last_seen=now,
            )
            staged[key] = record
            result.added.add(key)
        else:
            record.latest = obs
            record.last_seen = now
            result.updated.add(key)

        point = point_from_observation(obs, fallback_timestamp=now)
        if point is None:
            result.positionless += 1
            return

        if record.trail.append(point, now):
            result.points_appended += 1

    def _prune_and_evict(self, observed: Set[str], now: float, result: CycleResult) -> None:
        expired: List[str] = []
        for key, record in self._records.items():
            if self.eviction.is_expired(record.last_seen, now, key in observed):
                expired.append(key)
            else:
                record.trail.prune(now)

        for key in expired:
            del self._records[key]
            result.removed.add(key)
            result.updated.discard(key)

    @property
    def stats(self) -> dict:
        """Get store statistics."""
        snapshot = self.snapshot()
        return {
            'entities': len(snapshot),
            'cycle': snapshot.cycle,
            'generated_at': snapshot.generated_at_iso,
            'trail_points': sum(len(state.trail) for state in snapshot.values()),
            'trail_max_points': self.trail_max_points,
            'trail_max_age_seconds': self.trail_max_age_seconds,
            'eviction_policy': self.eviction.describe(),
        }
