from __future__ import annotations

import pytest

from simtraffic.app import create_app
from simtraffic.ingestion.scheduler import RefreshScheduler
from simtraffic.models.observation import Observation
from simtraffic.publisher import SubscriberHub
from simtraffic.store import EvictionPolicy

from conftest import FakeAdapter, obs


@pytest.fixture
def build(make_store, clock):
    """Build (app, client, scheduler) around scripted adapters."""

    def factory(adapters, **store_kwargs):
        scheduler = RefreshScheduler(
            adapters=adapters,
            store=make_store(**store_kwargs),
            hub=SubscriberHub(),
            refresh_period=15,
            fetch_timeout=2,
            clock=clock,
        )
        app = create_app(start_scheduler=False, scheduler=scheduler)
        app.config['TESTING'] = True
        return app, app.test_client(), scheduler

    return factory


def test_flights_empty_before_first_cycle(build) -> None:
    _, client, _ = build([FakeAdapter('A')])

    response = client.get('/flights')

    assert response.status_code == 200
    assert response.get_json() == []
    assert response.headers['X-Cycle'] == '0'


def test_scenario_single_pilot_from_one_source(build) -> None:
    source_a = FakeAdapter('A', [[Observation(source='A', cid='42', latitude=10.0, longitude=20.0)]])
    source_b = FakeAdapter('B', [[]])
    _, client, scheduler = build([source_a, source_b])

    scheduler.run_cycle()
    flights = client.get('/flights').get_json()

    assert len(flights) == 1
    assert flights[0]['id'] == 'A:42'
    assert flights[0]['network'] == 'A'
    assert flights[0]['trail'] == [
        {'lat': 10.0, 'lon': 20.0, 'alt': None, 'timestamp': flights[0]['timestamps']['last_seen']},
    ]


def test_scenario_trail_capped_at_k(build, clock) -> None:
    positions = [[obs(latitude=float(i), longitude=float(i))] for i in (1, 2, 3)]
    _, client, scheduler = build([FakeAdapter('VATSIM', positions)], max_points=2)

    for _ in positions:
        scheduler.run_cycle()
        clock.advance(15)

    trail = client.get('/flights/VATSIM:42').get_json()['trail']
    assert [(p['lat'], p['lon']) for p in trail] == [(2.0, 2.0), (3.0, 3.0)]


def test_scenario_entity_evicted_after_one_missed_cycle(build, clock) -> None:
    adapter = FakeAdapter('VATSIM', [[obs()], []])
    _, client, scheduler = build([adapter], eviction=EvictionPolicy.ttl(15))

    scheduler.run_cycle()
    assert len(client.get('/flights').get_json()) == 1

    clock.advance(15)
    scheduler.run_cycle()
    assert client.get('/flights').get_json() == []
    assert client.get('/flights/VATSIM:42').status_code == 404


def test_scenario_null_latitude_updates_latest_only(build, clock) -> None:
    adapter = FakeAdapter('VATSIM', [
        [obs(callsign='BAW1', altitude=3000.0)],
        [obs(callsign='BAW1', latitude=None, altitude=3500.0)],
    ])
    _, client, scheduler = build([adapter])

    scheduler.run_cycle()
    clock.advance(15)
    scheduler.run_cycle()

    flight = client.get('/flights/VATSIM:42').get_json()
    assert flight['position'] == {'latitude': None, 'longitude': 20.0, 'altitude': 3500.0}
    assert len(flight['trail']) == 1
    assert flight['trail'][0]['alt'] == 3000.0


def test_scenario_failed_source_still_serves_other(build, network_error) -> None:
    _, client, scheduler = build([
        FakeAdapter('IVAO', [network_error]),
        FakeAdapter('VATSIM', [[obs()]]),
    ])

    scheduler.run_cycle()
    response = client.get('/flights')

    assert response.status_code == 200
    assert [f['id'] for f in response.get_json()] == ['VATSIM:42']
    status = client.get('/metrics/status').get_json()
    assert status['refresh']['sources']['IVAO']['ok'] is False
    assert status['status'] == 'degraded'


def test_network_filter_and_trail_toggle(build) -> None:
    _, client, scheduler = build([
        FakeAdapter('IVAO', [[obs('IVAO', None, user_id='7')]]),
        FakeAdapter('VATSIM', [[obs()]]),
    ])
    scheduler.run_cycle()

    ivao_only = client.get('/flights?network=ivao&include_trail=false').get_json()

    assert [f['id'] for f in ivao_only] == ['IVAO:7']
    assert 'trail' not in ivao_only[0]


def test_get_flight_accepts_lowercase_network(build) -> None:
    _, client, scheduler = build([FakeAdapter('VATSIM', [[obs()]])])
    scheduler.run_cycle()

    response = client.get('/flights/vatsim:42')

    assert response.status_code == 200
    assert response.get_json()['id'] == 'VATSIM:42'
    assert response.headers['X-Cycle'] == '1'


def test_get_flight_with_analytics(build, clock) -> None:
    batches = [[obs(altitude=1000.0 + 500 * i, latitude=10.0 + i * 0.01)] for i in range(4)]
    _, client, scheduler = build([FakeAdapter('VATSIM', batches)])
    for _ in batches:
        scheduler.run_cycle()
        clock.advance(60)

    analytics = client.get('/flights/VATSIM:42?include_analytics=true').get_json()['analytics']

    assert analytics['points'] == 4
    assert analytics['altitude_trend'] == 'increasing'
    assert analytics['altitude_rate_fpm'] == 500
    assert analytics['path_length_km'] > 3


def test_unknown_flight_is_404(build) -> None:
    _, client, scheduler = build([FakeAdapter('VATSIM', [[obs()]])])
    scheduler.run_cycle()

    response = client.get('/flights/IVAO:nope')

    assert response.status_code == 404
    assert response.get_json() == {'error': 'Flight not found'}


def test_stream_rejects_unknown_mode(build) -> None:
    _, client, _ = build([FakeAdapter('VATSIM')])

    response = client.get('/flights/stream?mode=sometimes')

    assert response.status_code == 400


def test_fleet_metrics(build) -> None:
    _, client, scheduler = build([
        FakeAdapter('IVAO', [[obs('IVAO', None, user_id='7', altitude=10000.0, ground_speed=250.0)]]),
        FakeAdapter('VATSIM', [[obs(altitude=30000.0, ground_speed=450.0), obs(cid='9', latitude=None)]]),
    ])
    scheduler.run_cycle()

    body = client.get('/metrics/fleet').get_json()

    assert body['cycle'] == 1
    assert body['fleet']['count'] == 3
    assert body['fleet']['by_network'] == {'IVAO': 1, 'VATSIM': 2}
    assert body['fleet']['altitude']['mean'] == 20000.0
    assert body['fleet']['speed']['max'] == 450.0
    assert body['fleet']['without_position'] == 1


def test_status_reports_store_and_stream(build) -> None:
    _, client, scheduler = build([FakeAdapter('VATSIM', [[obs()]])])
    scheduler.run_cycle()

    status = client.get('/metrics/status').get_json()

    assert status['store']['entities'] == 1
    assert status['refresh']['cycle_count'] == 1
    assert status['stream']['subscribers'] == 0
    assert status['mirror'] == {'enabled': False}
    # Scheduler thread not started in tests
    assert status['status'] == 'degraded'


def test_health_and_unknown_route(build) -> None:
    _, client, _ = build([FakeAdapter('VATSIM')])

    assert client.get('/health').get_json() == {'status': 'ok'}
    assert client.get('/nowhere').status_code == 404


def test_flight_plan_projection_carries_route(build) -> None:
    _, client, scheduler = build([FakeAdapter('VATSIM', [[
        obs(departure='EGLL', arrival='KJFK', route='DCT BUZAD', flight_rules='I'),
    ]])])
    scheduler.run_cycle()

    flight_plan = client.get('/flights/VATSIM:42').get_json()['flight_plan']

    assert flight_plan == {
        'aircraft_type': None,
        'departure': 'EGLL',
        'arrival': 'KJFK',
        'route': 'DCT BUZAD',
        'flight_rules': 'I',
    }
