"""
Feed adapter contract.

An adapter turns one upstream snapshot into a list of Observations.
fetch_observations() may raise; fetch() never does. Any failure is logged
and reported as a failed FeedResult with no observations, so one broken
network can never take down the cycle for the other.
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Any

import requests

from simtraffic.exceptions import SourceFetchError
from simtraffic.models.observation import Observation, SourceStatus

logger = logging.getLogger(__name__)

_EXCESS_FRACTION = re.compile(r'(\.\d{6})\d+')


@dataclass
class FeedResult:
    """Outcome of one adapter fetch."""
    source: str
    observations: List[Observation] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, source: str, error: str, duration_ms: Optional[float] = None) -> 'FeedResult':
        return cls(source=source, observations=[], error=error, duration_ms=duration_ms)

    def to_status(self) -> SourceStatus:
        return SourceStatus(
            source=self.source,
            ok=self.ok,
            count=len(self.observations),
            error=self.error,
            duration_ms=self.duration_ms,
        )


class FeedAdapter(ABC):
    """Base class for one upstream network."""

    #: Network name, used as the entity key prefix
    name: str = ''

    @abstractmethod
    def fetch_observations(self) -> List[Observation]:
        """
        Fetch and normalize the current snapshot.

        Raises:
            SourceFetchError on network, auth, or payload errors
        """

    def fetch(self) -> FeedResult:
        """Fetch without raising; failures degrade to an empty result."""
        start = time.perf_counter()
        try:
            observations = self.fetch_observations()
        except SourceFetchError as e:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(f'{self.name} fetch failed: {e}')
            return FeedResult.failed(self.name, str(e), duration_ms)
        except Exception as e:
            # Adapter bug, still must not break the cycle
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(f'{self.name} adapter raised unexpectedly')
            return FeedResult.failed(self.name, f'{type(e).__name__}: {e}', duration_ms)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(f'{self.name}: {len(observations)} observations in {duration_ms:.0f}ms')
        return FeedResult(source=self.name, observations=observations, duration_ms=duration_ms)

    def close(self) -> None:
        """Release any network resources."""


class HttpFeedAdapter(FeedAdapter):
    """Feed adapter backed by a requests session."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.session = session or requests.Session()
        self.session.headers.setdefault('User-Agent', 'simtraffic/1.0')
        self.timeout = timeout

    def _get_json(self, url: str, headers: Optional[dict] = None) -> Any:
        """
        GET a JSON document.

        Raises:
            SourceFetchError on network errors, HTTP errors, or invalid JSON
        """
        logger.debug(f'{self.name}: GET {url}')
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise SourceFetchError(self.name, f'timeout fetching {url}') from None
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise SourceFetchError(self.name, f'HTTP {status} from {url}', status_code=status) from e
        except requests.exceptions.RequestException as e:
            raise SourceFetchError(self.name, f'request failed: {e}') from e

        try:
            return response.json()
        except ValueError as e:
            raise SourceFetchError(self.name, f'invalid JSON from {url}') from e

    def close(self) -> None:
        self.session.close()


# -------------------------------------------------------------------------
# Field coercion helpers shared by the adapters
# -------------------------------------------------------------------------

def as_float(value: Any) -> Optional[float]:
    """Coerce a numeric payload field, or None if absent/invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if result != result:  # NaN
        return None
    return result


def as_str(value: Any) -> Optional[str]:
    """Coerce an identifier/text field; blank strings become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def as_timestamp(value: Any) -> Optional[float]:
    """
    Parse a source timestamp into unix seconds.

    Accepts ISO-8601 strings (with or without a trailing Z) and
    numeric epoch values in seconds or milliseconds.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Anything this large is milliseconds
        return float(value) / 1000.0 if value > 1e11 else float(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        # datetime.fromisoformat takes at most 6 fractional digits
        text = _EXCESS_FRACTION.sub(r'\1', text)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.timestamp()
    return None
