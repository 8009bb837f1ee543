"""
SimTraffic settings.

Every tunable (feed endpoints, cycle timing, trail bounds, eviction,
mirror and stream options) is read once from the environment, or a .env
file, when this module is imported. A bad value fails the import with
ConfigError instead of surfacing mid-cycle.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

from simtraffic.exceptions import ConfigError

load_dotenv()

EVICTION_MODES = ('ttl', 'immediate')


def _env_float(name: str, default: float) -> float:
    """Read a positive number from the environment."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return float(default)
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f'{name} must be a number, got {raw!r}') from None
    if value <= 0:
        raise ConfigError(f'{name} must be positive, got {raw!r}')
    return value


def _env_int(name: str, default: int) -> int:
    value = _env_float(name, default)
    if value != int(value):
        raise ConfigError(f'{name} must be an integer, got {value}')
    return int(value)


def _parse_feeds(value: str) -> Tuple[str, ...]:
    """Parse 'ivao,vatsim' into a tuple of lowercase feed names."""
    return tuple(part.strip().lower() for part in value.split(',') if part.strip())


@dataclass(frozen=True)
class IvaoConfig:
    """IVAO whazzup feed configuration."""
    token_url: str = os.getenv('IVAO_TOKEN_URL', 'https://ivao-token-server.onrender.com/token')
    whazzup_url: str = os.getenv('IVAO_WHAZZUP_URL', 'https://api.ivao.aero/v2/tracker/whazzup')
    # The token is short-lived; reuse it for a few cycles at most
    token_ttl_seconds: float = _env_float('IVAO_TOKEN_TTL_SECONDS', 60)


@dataclass(frozen=True)
class VatsimConfig:
    """VATSIM data feed configuration."""
    data_url: str = os.getenv('VATSIM_DATA_URL', 'https://data.vatsim.net/v3/vatsim-data.json')


@dataclass(frozen=True)
class RefreshConfig:
    """Refresh cycle settings."""
    period_seconds: float = _env_float('REFRESH_PERIOD_SECONDS', 15)
    fetch_timeout_seconds: float = _env_float('FETCH_TIMEOUT_SECONDS', 10)
    shutdown_grace_seconds: float = _env_float('SHUTDOWN_GRACE_SECONDS', 10)
    enabled_feeds: Tuple[str, ...] = _parse_feeds(os.getenv('ENABLED_FEEDS', 'ivao,vatsim'))


@dataclass(frozen=True)
class TrailConfig:
    """Per-aircraft trail bounds."""
    max_points: int = _env_int('TRAIL_MAX_POINTS', 120)
    max_age_seconds: float = _env_float('TRAIL_MAX_AGE_SECONDS', 3600)


@dataclass(frozen=True)
class EvictionConfig:
    """
    Eviction policy for aircraft that stop reporting.

    ttl:       drop an aircraft once it has not been observed for
               stale_threshold_seconds
    immediate: drop every aircraft missing from the current cycle
    """
    mode: str = os.getenv('EVICTION_POLICY', 'ttl').strip().lower()
    stale_threshold_seconds: float = _env_float('STALE_THRESHOLD_SECONDS', 60)

    def __post_init__(self):
        if self.mode not in EVICTION_MODES:
            raise ConfigError(f'EVICTION_POLICY must be one of {EVICTION_MODES}, got {self.mode!r}')


@dataclass(frozen=True)
class DatabaseConfig:
    """Durable mirror configuration. Disabled unless DATABASE_URL is set."""
    url: Optional[str] = os.getenv('DATABASE_URL') or None

    @property
    def is_enabled(self) -> bool:
        return bool(self.url)

    @property
    def is_sqlite(self) -> bool:
        return bool(self.url) and self.url.startswith('sqlite')


@dataclass(frozen=True)
class StreamConfig:
    """Push delivery settings."""
    queue_size: int = _env_int('STREAM_QUEUE_SIZE', 8)
    # Seconds between keep-alive comments on idle streams
    keepalive_seconds: float = _env_float('STREAM_KEEPALIVE_SECONDS', 15)


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    ivao: IvaoConfig = field(default_factory=IvaoConfig)
    vatsim: VatsimConfig = field(default_factory=VatsimConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    trail: TrailConfig = field(default_factory=TrailConfig)
    eviction: EvictionConfig = field(default_factory=EvictionConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)

    # Flask settings
    port: int = 3000
    debug: bool = False


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        ivao=IvaoConfig(),
        vatsim=VatsimConfig(),
        refresh=RefreshConfig(),
        trail=TrailConfig(),
        eviction=EvictionConfig(),
        database=DatabaseConfig(),
        stream=StreamConfig(),
        port=_env_int('PORT', 3000),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
