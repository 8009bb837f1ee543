"""
Flight data API endpoints.

Provides endpoints for:
- GET /flights - List all tracked flights with their trails
- GET /flights/<id> - Get single flight details
- GET /flights/stream - Server-sent events, one message per cycle

Every handler reads the last published snapshot and nothing else, so
responses never wait on a refresh cycle. Before the first cycle completes
the snapshot is empty and /flights returns [].
"""

import json
import logging
from typing import Optional, Iterator

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from simtraffic.analytics import FleetAnalyzer
from simtraffic.models.observation import StoreSnapshot
from simtraffic.publisher import SubscriberHub
from simtraffic.store import AggregationStore

logger = logging.getLogger(__name__)

flights_bp = Blueprint('flights', __name__, url_prefix='/flights')

STREAM_MODES = ('full', 'diff')


def _store() -> AggregationStore:
    return current_app.config['STORE']


def _flag(name: str, default: bool) -> bool:
    value = request.args.get(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes')


def _snapshot_headers(response: Response, snapshot: StoreSnapshot) -> Response:
    response.headers['X-Cycle'] = str(snapshot.cycle)
    if snapshot.generated_at_iso:
        response.headers['X-Generated-At'] = snapshot.generated_at_iso
    return response


@flights_bp.route('', methods=['GET'])
def list_flights():
    """
    List all currently tracked flights.

    Query parameters:
    - network: string, only flights from this network (IVAO|VATSIM)
    - include_trail: boolean, include trail points (default true)

    Returns a JSON array; the cycle it came from is in X-Cycle.
    """
    snapshot = _store().snapshot()

    network = request.args.get('network')
    include_trail = _flag('include_trail', True)

    states = snapshot.values()
    if network:
        network = network.upper()
        states = [s for s in states if s.latest.source.upper() == network]

    flights = [state.to_dict(include_trail=include_trail) for state in states]
    return _snapshot_headers(jsonify(flights), snapshot)


def _snapshot_message(snapshot: StoreSnapshot) -> dict:
    return {
        'cycle': snapshot.cycle,
        'generated_at': snapshot.generated_at_iso,
        'flights': [state.to_dict() for state in snapshot.values()],
    }


def _delta_message(snapshot: StoreSnapshot) -> dict:
    changed = sorted(snapshot.added | snapshot.updated)
    return {
        'cycle': snapshot.cycle,
        'generated_at': snapshot.generated_at_iso,
        'upserted': [snapshot.entities[key].to_dict() for key in changed if key in snapshot.entities],
        'removed': sorted(snapshot.removed),
    }


def format_sse(event: str, data: dict, event_id: Optional[int] = None) -> str:
    """Encode one server-sent event."""
    lines = []
    if event_id is not None:
        lines.append(f'id: {event_id}')
    lines.append(f'event: {event}')
    lines.append(f'data: {json.dumps(data, separators=(",", ":"))}')
    return '\n'.join(lines) + '\n\n'


def iter_stream_events(
    hub: SubscriberHub,
    store: AggregationStore,
    mode: str = 'full',
    keepalive_seconds: Optional[float] = 15.0,
) -> Iterator[str]:
    """
    Yield SSE messages for one subscriber until the hub closes it.

    In diff mode, a delta is only sent when it directly follows the
    previously delivered cycle; after a gap (dropped updates) the
    subscriber gets a full snapshot instead.
    """
    sub = hub.subscribe(initial=store.snapshot())
    last_cycle = 0
    try:
        while True:
            snapshot = sub.get(timeout=keepalive_seconds)
            if snapshot is None:
                if sub.closed:
                    return
                yield ': keepalive\n\n'
                continue

            if mode == 'diff' and last_cycle and snapshot.cycle == last_cycle + 1:
                yield format_sse('delta', _delta_message(snapshot), snapshot.cycle)
            else:
                yield format_sse('snapshot', _snapshot_message(snapshot), snapshot.cycle)
            last_cycle = snapshot.cycle
    finally:
        hub.unsubscribe(sub)


@flights_bp.route('/stream', methods=['GET'])
def stream_flights():
    """
    Push every completed cycle to the client as server-sent events.

    Query parameters:
    - mode: 'full' (default) sends the whole flight list each cycle,
            'diff' sends only upserted and removed flights
    """
    mode = request.args.get('mode', 'full').lower()
    if mode not in STREAM_MODES:
        return jsonify({'error': f'mode must be one of {", ".join(STREAM_MODES)}'}), 400

    hub = current_app.config.get('HUB')
    if hub is None:
        return jsonify({'error': 'Streaming disabled'}), 404

    events = iter_stream_events(
        hub,
        _store(),
        mode=mode,
        keepalive_seconds=current_app.config.get('STREAM_KEEPALIVE_SECONDS', 15.0),
    )
    return Response(
        stream_with_context(events),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )


@flights_bp.route('/<path:flight_id>', methods=['GET'])
def get_flight(flight_id: str):
    """
    Get a single flight by entity key (e.g. VATSIM:1234567).

    Query parameters:
    - include_analytics: boolean, add trail analytics (default false)
    """
    snapshot = _store().snapshot()
    state = snapshot.get(flight_id)

    if state is None:
        # Keys are NETWORK:identity; accept any case for the network part
        network, _, identity = flight_id.partition(':')
        state = snapshot.get(f'{network.upper()}:{identity}')

    if state is None:
        return jsonify({'error': 'Flight not found'}), 404

    result = state.to_dict()
    if _flag('include_analytics', False):
        result['analytics'] = FleetAnalyzer().analyze_trail(state).to_dict()

    return _snapshot_headers(jsonify(result), snapshot)
