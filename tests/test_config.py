from __future__ import annotations

import pytest

from simtraffic.config import EvictionConfig, _env_float, _env_int, _parse_feeds
from simtraffic.exceptions import ConfigError
from simtraffic.store import EvictionPolicy


def test_env_float_defaults_when_unset(monkeypatch) -> None:
    monkeypatch.delenv('REFRESH_PERIOD_SECONDS', raising=False)

    assert _env_float('REFRESH_PERIOD_SECONDS', 15) == 15.0


def test_env_float_reads_value(monkeypatch) -> None:
    monkeypatch.setenv('REFRESH_PERIOD_SECONDS', '7.5')

    assert _env_float('REFRESH_PERIOD_SECONDS', 15) == 7.5


@pytest.mark.parametrize('raw', ['fast', '0', '-3'])
def test_env_float_rejects_bad_values(monkeypatch, raw) -> None:
    monkeypatch.setenv('REFRESH_PERIOD_SECONDS', raw)

    with pytest.raises(ConfigError, match='REFRESH_PERIOD_SECONDS'):
        _env_float('REFRESH_PERIOD_SECONDS', 15)


def test_env_int_rejects_fractions(monkeypatch) -> None:
    monkeypatch.setenv('TRAIL_MAX_POINTS', '2.5')

    with pytest.raises(ConfigError):
        _env_int('TRAIL_MAX_POINTS', 120)


def test_parse_feeds() -> None:
    assert _parse_feeds(' IVAO, vatsim ,,') == ('ivao', 'vatsim')
    assert _parse_feeds('') == ()


def test_eviction_config_validates_mode() -> None:
    with pytest.raises(ConfigError):
        EvictionConfig(mode='sometimes', stale_threshold_seconds=60)


def test_eviction_policy_from_config() -> None:
    policy = EvictionPolicy.from_config(EvictionConfig(mode='immediate', stale_threshold_seconds=30))

    assert policy.describe() == 'immediate'
