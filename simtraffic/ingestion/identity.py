"""
Entity key resolution.

Every observation maps to 'SOURCE:identity', where identity is the first
present field in IDENTITY_PRECEDENCE. The source prefix keeps keys from
different networks apart even when their numeric ids collide.

Observations carrying none of those fields get a random identity. Such
an aircraft receives a new key every cycle and therefore never builds up
a trail; it is visible for the cycle that reported it and evicted after.
"""

import logging
import secrets
from typing import Optional

from simtraffic.models.observation import Observation

logger = logging.getLogger(__name__)

# Highest priority first
IDENTITY_PRECEDENCE = ('cid', 'user_id', 'session_id', 'callsign')


def _clean(value) -> Optional[str]:
    """Normalize an identity field; None and blank strings count as absent."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def resolve_identity(obs: Observation) -> Optional[str]:
    """First present identity field of the observation, or None."""
    for field_name in IDENTITY_PRECEDENCE:
        value = _clean(getattr(obs, field_name, None))
        if value is not None:
            return value
    return None


def resolve_entity_key(obs: Observation) -> str:
    """
    Derive the entity key for an observation.

    Never raises. Deterministic for identical source and identity fields;
    random for observations without any identity field.
    """
    identity = resolve_identity(obs)
    if identity is None:
        identity = secrets.token_hex(6)
        logger.debug(f'{obs.source} observation without identity fields, using {identity}')
    return f'{obs.source}:{identity}'
