from __future__ import annotations

import threading
from typing import Callable, List, Optional, Sequence, Union

import pytest

from simtraffic.exceptions import SourceFetchError
from simtraffic.ingestion.base import FeedAdapter
from simtraffic.models.observation import Observation
from simtraffic.store import AggregationStore, EvictionPolicy

T0 = 1_700_000_000.0


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


Batch = Union[Sequence[Observation], Exception, Callable[[], Sequence[Observation]]]


class FakeAdapter(FeedAdapter):
    """Adapter replaying scripted batches; the last batch repeats."""

    def __init__(self, name: str, batches: Optional[List[Batch]] = None):
        self.name = name
        self.batches: List[Batch] = list(batches or [[]])
        self.calls = 0
        self.closed = False

    def fetch_observations(self) -> List[Observation]:
        batch = self.batches[min(self.calls, len(self.batches) - 1)]
        self.calls += 1
        if isinstance(batch, Exception):
            raise batch
        if callable(batch):
            return list(batch())
        return list(batch)

    def close(self) -> None:
        self.closed = True


class BlockingAdapter(FeedAdapter):
    """Adapter that hangs until released."""

    def __init__(self, name: str):
        self.name = name
        self.release = threading.Event()

    def fetch_observations(self) -> List[Observation]:
        self.release.wait(5)
        return []


def obs(source: str = 'VATSIM', cid: Optional[str] = '42', **fields) -> Observation:
    fields.setdefault('latitude', 10.0)
    fields.setdefault('longitude', 20.0)
    return Observation(source=source, cid=cid, **fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_store(clock: FakeClock):
    def factory(
        max_points: int = 120,
        max_age: float = 3600,
        eviction: Optional[EvictionPolicy] = None,
    ) -> AggregationStore:
        return AggregationStore(
            trail_max_points=max_points,
            trail_max_age_seconds=max_age,
            eviction=eviction or EvictionPolicy.ttl(60),
            clock=clock,
        )

    return factory


@pytest.fixture
def network_error() -> SourceFetchError:
    return SourceFetchError('IVAO', 'request failed: connection refused')
