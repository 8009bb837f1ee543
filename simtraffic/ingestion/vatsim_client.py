"""
VATSIM data feed client.

VATSIM publishes the whole network as one unauthenticated JSON document
(v3 data feed), refreshed roughly every 15 seconds. Pilot record shape:

    cid           - VATSIM member id (integer)
    callsign      - e.g. 'BAW123'
    name          - pilot name
    latitude      - WGS84 latitude
    longitude     - WGS84 longitude
    altitude      - feet
    groundspeed   - knots
    heading       - degrees
    transponder   - squawk code
    last_updated  - ISO-8601 time of the last position report
    flight_plan   - {aircraft_short, departure, arrival, route,
                    flight_rules, ...} or null
"""

import logging
from typing import Optional, List

import requests

from simtraffic.config import config, VatsimConfig
from simtraffic.exceptions import SourceFetchError
from simtraffic.ingestion.base import HttpFeedAdapter, as_float, as_str, as_timestamp
from simtraffic.models.observation import Observation

logger = logging.getLogger(__name__)


def parse_vatsim_pilot(raw: dict, source: str = 'VATSIM') -> Observation:
    """
    Normalize one VATSIM pilot record.

    Raises:
        TypeError/AttributeError if the record is not a mapping
    """
    flight_plan = raw.get('flight_plan') or {}

    return Observation(
        source=source,
        cid=as_str(raw.get('cid')),
        callsign=as_str(raw.get('callsign')),
        latitude=as_float(raw.get('latitude')),
        longitude=as_float(raw.get('longitude')),
        altitude=as_float(raw.get('altitude')),
        ground_speed=as_float(raw.get('groundspeed')),
        heading=as_float(raw.get('heading')),
        transponder=as_str(raw.get('transponder')),
        aircraft_type=as_str(flight_plan.get('aircraft_short')),
        departure=as_str(flight_plan.get('departure')),
        arrival=as_str(flight_plan.get('arrival')),
        route=as_str(flight_plan.get('route')),
        flight_rules=as_str(flight_plan.get('flight_rules')),
        pilot_name=as_str(raw.get('name')),
        observed_at=as_timestamp(raw.get('last_updated')),
    )


class VatsimClient(HttpFeedAdapter):
    """Adapter for the VATSIM v3 data feed."""

    name = 'VATSIM'

    def __init__(
        self,
        data_url: str = 'https://data.vatsim.net/v3/vatsim-data.json',
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        super().__init__(session=session, timeout=timeout)
        self.data_url = data_url

    @classmethod
    def from_config(cls, vatsim: Optional[VatsimConfig] = None) -> 'VatsimClient':
        """Create client from application configuration."""
        vatsim = vatsim or config.vatsim
        return cls(
            data_url=vatsim.data_url,
            timeout=config.refresh.fetch_timeout_seconds,
        )

    def fetch_observations(self) -> List[Observation]:
        data = self._get_json(self.data_url)

        if not isinstance(data, dict) or not isinstance(data.get('pilots'), list):
            raise SourceFetchError(self.name, 'payload has no pilots list')

        observations = []
        for raw in data['pilots']:
            try:
                observations.append(parse_vatsim_pilot(raw, self.name))
            except (TypeError, AttributeError) as e:
                logger.debug(f'Skipping malformed VATSIM pilot record: {e}')

        logger.info(f'Received {len(observations)} pilots from VATSIM')
        return observations
