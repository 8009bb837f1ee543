"""
Data ingestion module for SimTraffic.

Handles polling the IVAO and VATSIM feeds, normalizing pilot records
into Observations, and resolving stable entity keys. The refresh loop
itself lives in simtraffic.ingestion.scheduler.
"""

from simtraffic.ingestion.base import FeedAdapter, FeedResult
from simtraffic.ingestion.identity import resolve_entity_key
from simtraffic.ingestion.ivao_client import IvaoClient
from simtraffic.ingestion.vatsim_client import VatsimClient

__all__ = ['FeedAdapter', 'FeedResult', 'resolve_entity_key', 'IvaoClient', 'VatsimClient']
