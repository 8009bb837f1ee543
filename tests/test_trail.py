from __future__ import annotations

import random

import pytest

from simtraffic.models.observation import Observation, TrailPoint
from simtraffic.trail import TrailBuffer, point_from_observation

from conftest import T0


def _point(t: float, lat: float = 1.0) -> TrailPoint:
    return TrailPoint(latitude=lat, longitude=2.0, altitude=3000.0, timestamp=t)


def test_count_bound_keeps_newest_points() -> None:
    trail = TrailBuffer(max_points=2, max_age_seconds=3600)

    for i in range(3):
        trail.append(_point(T0 + i, lat=float(i)), now=T0 + i)

    assert [p.latitude for p in trail.snapshot()] == [1.0, 2.0]


def test_age_bound_drops_old_points() -> None:
    trail = TrailBuffer(max_points=10, max_age_seconds=60)

    trail.append(_point(T0), now=T0)
    trail.append(_point(T0 + 30), now=T0 + 30)
    trail.append(_point(T0 + 61), now=T0 + 61)

    assert [p.timestamp for p in trail.snapshot()] == [T0 + 30, T0 + 61]


def test_point_exactly_at_age_cutoff_is_dropped() -> None:
    trail = TrailBuffer(max_points=10, max_age_seconds=60)
    trail.append(_point(T0), now=T0)

    trail.prune(now=T0 + 60)

    assert len(trail) == 0


def test_bounds_hold_for_random_append_sequences() -> None:
    rng = random.Random(7)
    trail = TrailBuffer(max_points=5, max_age_seconds=40)
    now = T0

    for _ in range(500):
        now += rng.uniform(0, 20)
        # Source timestamps may lag the cycle clock or repeat
        trail.append(_point(now - rng.choice([0, 0, 5, 50])), now=now)

        points = trail.snapshot()
        assert len(points) <= 5
        assert all(p.timestamp > now - 40 for p in points)
        assert all(a.timestamp < b.timestamp for a, b in zip(points, points[1:]))


def test_duplicate_or_older_timestamp_is_rejected() -> None:
    trail = TrailBuffer(max_points=10, max_age_seconds=3600)

    assert trail.append(_point(T0 + 10), now=T0 + 10) is True
    assert trail.append(_point(T0 + 10, lat=9.0), now=T0 + 11) is False
    assert trail.append(_point(T0 + 5), now=T0 + 11) is False

    assert [p.latitude for p in trail.snapshot()] == [1.0]


def test_snapshot_is_isolated_from_later_appends() -> None:
    trail = TrailBuffer(max_points=10, max_age_seconds=3600)
    trail.append(_point(T0), now=T0)

    before = trail.snapshot()
    trail.append(_point(T0 + 1), now=T0 + 1)

    assert len(before) == 1
    assert len(trail.snapshot()) == 2
    assert isinstance(before, tuple)


def test_invalid_bounds_rejected() -> None:
    with pytest.raises(ValueError):
        TrailBuffer(max_points=0)
    with pytest.raises(ValueError):
        TrailBuffer(max_age_seconds=0)


def test_observation_without_position_is_not_a_point() -> None:
    observation = Observation(source='IVAO', callsign='AFR1', latitude=None, longitude=5.0)

    assert point_from_observation(observation, fallback_timestamp=T0) is None


def test_zero_coordinates_are_a_valid_position() -> None:
    observation = Observation(source='IVAO', callsign='AFR1', latitude=0.0, longitude=0.0)

    point = point_from_observation(observation, fallback_timestamp=T0)

    assert point is not None
    assert (point.latitude, point.longitude, point.timestamp) == (0.0, 0.0, T0)


def test_source_timestamp_preferred_over_cycle_time() -> None:
    observation = Observation(source='VATSIM', cid='1', latitude=1.0, longitude=1.0, observed_at=T0 - 3)

    point = point_from_observation(observation, fallback_timestamp=T0)

    assert point.timestamp == T0 - 3


def test_copy_is_independent_of_original() -> None:
    buffer = TrailBuffer(max_points=5, max_age_seconds=3600)
    buffer.append(TrailPoint(1.0, 1.0, None, T0), now=T0)

    clone = buffer.copy()
    clone.append(TrailPoint(2.0, 2.0, None, T0 + 15), now=T0 + 15)

    assert len(buffer) == 1
    assert len(clone) == 2
    assert clone.max_points == 5
