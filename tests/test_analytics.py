from __future__ import annotations

import numpy as np
import pytest

from simtraffic.analytics import FleetAnalyzer, TrendDirection
from simtraffic.analytics.fleet import haversine_km
from simtraffic.models.observation import StoreSnapshot

from conftest import obs


def _trail_state(make_store, clock, altitudes, step_seconds=60.0):
    store = make_store()
    for i, altitude in enumerate(altitudes):
        store.apply_cycle([obs(latitude=10.0, longitude=20.0 + i * 0.1, altitude=altitude)])
        clock.advance(step_seconds)
    return store.get('VATSIM:42')


def test_haversine_one_degree_of_latitude() -> None:
    distance = haversine_km(np.array([0.0]), np.array([0.0]), np.array([1.0]), np.array([0.0]))

    assert distance[0] == pytest.approx(111.19, abs=0.01)


def test_descending_trail(make_store, clock) -> None:
    state = _trail_state(make_store, clock, [11000.0, 10000.0, 9000.0, 8000.0])

    analytics = FleetAnalyzer().analyze_trail(state)

    assert analytics.altitude_trend == TrendDirection.DECREASING
    assert analytics.altitude_rate_fpm == pytest.approx(-1000.0)
    assert analytics.span_seconds == 180.0
    assert analytics.path_length_km == pytest.approx(3 * 10.95, rel=0.01)


def test_level_trail_is_stable(make_store, clock) -> None:
    state = _trail_state(make_store, clock, [35000.0, 35020.0, 34990.0, 35000.0])

    assert FleetAnalyzer().analyze_trail(state).altitude_trend == TrendDirection.STABLE


def test_short_or_altitude_less_trail_has_unknown_trend(make_store, clock) -> None:
    analyzer = FleetAnalyzer()

    single = _trail_state(make_store, clock, [1000.0])
    assert analyzer.analyze_trail(single).to_dict() == {
        'points': 1,
        'span_seconds': 0.0,
        'path_length_km': 0.0,
        'altitude_trend': 'unknown',
        'altitude_rate_fpm': None,
    }

    no_altitude = _trail_state(make_store, clock, [None, None, None])
    result = analyzer.analyze_trail(no_altitude)
    assert result.altitude_trend == TrendDirection.UNKNOWN
    assert result.path_length_km > 0


def test_fleet_statistics_on_empty_snapshot() -> None:
    stats = FleetAnalyzer().get_fleet_statistics(StoreSnapshot())

    assert stats['count'] == 0
    assert stats['altitude'] is None


def test_fleet_statistics_by_network(make_store) -> None:
    store = make_store()
    snapshot = store.apply_cycle([
        obs('IVAO', None, user_id='1', altitude=1000.0),
        obs('VATSIM', '2', altitude=3000.0, ground_speed=200.0),
        obs('VATSIM', '3', latitude=None),
    ])

    stats = FleetAnalyzer().get_fleet_statistics(snapshot)

    assert stats['by_network'] == {'IVAO': 1, 'VATSIM': 2}
    assert stats['altitude'] == {'mean': 2000.0, 'min': 1000.0, 'max': 3000.0, 'std': 1000.0}
    assert stats['speed']['mean'] == 200.0
    assert stats['trail_length']['max'] == 1.0
    assert stats['without_position'] == 1
