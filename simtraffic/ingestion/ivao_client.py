"""
IVAO whazzup tracker client.

The IVAO v2 tracker requires a short-lived bearer token, obtained from a
separate token endpoint returning {"token": "..."}. The token is cached
for token_ttl_seconds and dropped as soon as the tracker answers 401, so
the next cycle asks for a fresh one instead of retrying in-cycle.

Pilot record shape (clients.pilots[]):

    id          - session id
    userId      - IVAO member id
    callsign    - e.g. 'AFR1234'
    lastTrack   - {latitude, longitude, altitude, groundSpeed, heading,
                   transponder, timestamp}
    flightPlan  - {aircraftId, departureId, arrivalId, route,
                  flightRules, ...} or null

Position fields are read from the record itself first and from lastTrack
second.
"""

import logging
import time
from typing import Optional, List, Any

import requests

from simtraffic.config import config, IvaoConfig
from simtraffic.exceptions import SourceFetchError, TokenFetchError
from simtraffic.ingestion.base import HttpFeedAdapter, as_float, as_str, as_timestamp
from simtraffic.models.observation import Observation

logger = logging.getLogger(__name__)


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def parse_ivao_pilot(raw: dict, source: str = 'IVAO') -> Observation:
    """
    Normalize one IVAO pilot record.

    Raises:
        TypeError/AttributeError if the record is not a mapping
    """
    track = raw.get('lastTrack') or {}
    flight_plan = raw.get('flightPlan') or {}

    return Observation(
        source=source,
        user_id=as_str(raw.get('userId')),
        session_id=as_str(raw.get('id')),
        callsign=as_str(raw.get('callsign')),
        latitude=as_float(_first_present(raw.get('latitude'), track.get('latitude'))),
        longitude=as_float(_first_present(raw.get('longitude'), track.get('longitude'))),
        altitude=as_float(_first_present(raw.get('altitude'), track.get('altitude'))),
        ground_speed=as_float(_first_present(raw.get('groundSpeed'), track.get('groundSpeed'))),
        heading=as_float(_first_present(raw.get('heading'), track.get('heading'))),
        transponder=as_str(_first_present(raw.get('transponder'), track.get('transponder'))),
        aircraft_type=as_str(flight_plan.get('aircraftId')),
        departure=as_str(flight_plan.get('departureId')),
        arrival=as_str(flight_plan.get('arrivalId')),
        route=as_str(flight_plan.get('route')),
        flight_rules=as_str(flight_plan.get('flightRules')),
        observed_at=as_timestamp(track.get('timestamp')),
    )


class IvaoClient(HttpFeedAdapter):
    """
    Adapter for the IVAO whazzup tracker.

    Handles:
    - Bearer token retrieval and caching
    - Whazzup snapshot download
    - Normalizing the nested lastTrack/flightPlan blocks
    """

    name = 'IVAO'

    def __init__(
        self,
        token_url: str = 'https://ivao-token-server.onrender.com/token',
        whazzup_url: str = 'https://api.ivao.aero/v2/tracker/whazzup',
        token_ttl_seconds: float = 60.0,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        super().__init__(session=session, timeout=timeout)
        self.token_url = token_url
        self.whazzup_url = whazzup_url
        self.token_ttl_seconds = token_ttl_seconds

        self._token: Optional[str] = None
        self._token_fetched_at: float = 0

    @classmethod
    def from_config(cls, ivao: Optional[IvaoConfig] = None) -> 'IvaoClient':
        """Create client from application configuration."""
        ivao = ivao or config.ivao
        return cls(
            token_url=ivao.token_url,
            whazzup_url=ivao.whazzup_url,
            token_ttl_seconds=ivao.token_ttl_seconds,
            timeout=config.refresh.fetch_timeout_seconds,
        )

    def _get_token(self) -> str:
        """
        Return a cached token or fetch a new one.

        Raises:
            TokenFetchError if the token endpoint fails or returns no token
        """
        age = time.monotonic() - self._token_fetched_at
        if self._token and age < self.token_ttl_seconds:
            return self._token

        try:
            data = self._get_json(self.token_url)
        except SourceFetchError as e:
            raise TokenFetchError(self.name, f'token request failed ({e})') from e

        token = data.get('token') if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            raise TokenFetchError(self.name, 'token endpoint returned no token')

        self._token = token
        self._token_fetched_at = time.monotonic()
        logger.debug('Obtained new IVAO token')
        return token

    def invalidate_token(self) -> None:
        self._token = None
        self._token_fetched_at = 0

    def fetch_observations(self) -> List[Observation]:
        token = self._get_token()
        headers = {
            'Authorization': f'Bearer {token}',
            'Accept': 'application/json',
        }

        try:
            data = self._get_json(self.whazzup_url, headers=headers)
        except SourceFetchError as e:
            if e.status_code in (401, 403):
                logger.warning('IVAO rejected the bearer token, will fetch a new one next cycle')
                self.invalidate_token()
            raise

        clients = data.get('clients') if isinstance(data, dict) else None
        pilots = clients.get('pilots') if isinstance(clients, dict) else None
        if not isinstance(pilots, list):
            raise SourceFetchError(self.name, 'payload has no clients.pilots list')

        observations = []
        for raw in pilots:
            try:
                observations.append(parse_ivao_pilot(raw, self.name))
            except (TypeError, AttributeError) as e:
                logger.debug(f'Skipping malformed IVAO pilot record: {e}')

        logger.info(f'Received {len(observations)} pilots from IVAO')
        return observations
