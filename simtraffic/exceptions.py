"""Exception hierarchy for SimTraffic."""

from typing import Optional


class SimTrafficError(Exception):
    """Base exception for all SimTraffic errors."""


class ConfigError(SimTrafficError):
    """Invalid configuration value."""


class SourceFetchError(SimTrafficError):
    """
    One feed could not be fetched or parsed for one cycle.

    Never fatal: the scheduler degrades the source to an empty
    observation set and carries on with the others.
    """

    def __init__(self, source: str, message: str, *, status_code: Optional[int] = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f'{source}: {message}')


class TokenFetchError(SourceFetchError):
    """The bearer token required by a feed could not be obtained."""


class PersistenceError(SimTrafficError):
    """Writing the snapshot to the durable mirror failed."""


class StoreConsistencyViolation(SimTrafficError):
    """
    A store invariant was broken, e.g. two cycles merging at once.

    This is a programmer error and is not meant to be recovered from.
    """
