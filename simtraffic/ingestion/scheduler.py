"""
Refresh scheduler - orchestrates data flow from the feeds to consumers.

Cycle stages:
1. Fetch: Poll every feed adapter in parallel, bounded by fetch_timeout
2. Merge: Resolve entity keys and fold observations into the store
3. Evict: Drop aircraft per the eviction policy (inside the store)
4. Publish: Swap in the new snapshot and push it to subscribers
5. Mirror: Write the snapshot to the durable mirror, if configured

Exactly one cycle runs at a time. The first cycle starts immediately;
each following one is due refresh_period after the previous one started,
or right away if the previous one overran.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional, List, Dict, Callable, Sequence

from simtraffic.config import config
from simtraffic.exceptions import StoreConsistencyViolation, PersistenceError
from simtraffic.ingestion.base import FeedAdapter, FeedResult
from simtraffic.models.observation import Observation, SourceStatus, StoreSnapshot
from simtraffic.persistence import StoreMirror
from simtraffic.publisher import SubscriberHub
from simtraffic.store import AggregationStore

logger = logging.getLogger(__name__)


def build_adapters(feed_names: Optional[Sequence[str]] = None) -> List[FeedAdapter]:
    """Create the configured feed adapters."""
    from simtraffic.ingestion.ivao_client import IvaoClient
    from simtraffic.ingestion.vatsim_client import VatsimClient

    factories: Dict[str, Callable[[], FeedAdapter]] = {
        'ivao': IvaoClient.from_config,
        'vatsim': VatsimClient.from_config,
    }

    adapters = []
    for name in feed_names if feed_names is not None else config.refresh.enabled_feeds:
        factory = factories.get(name.lower())
        if factory is None:
            logger.warning(f'Unknown feed {name!r} in ENABLED_FEEDS, ignoring')
            continue
        adapters.append(factory())
    return adapters


class RefreshScheduler:
    """
    Owns the refresh loop and the only write path into the store.

    Can run as a background thread for continuous polling, or be driven
    one cycle at a time with run_cycle().
    """

    def __init__(
        self,
        adapters: Sequence[FeedAdapter],
        store: AggregationStore,
        hub: Optional[SubscriberHub] = None,
        mirror: Optional[StoreMirror] = None,
        refresh_period: Optional[float] = None,
        fetch_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the scheduler.

        Args:
            adapters: Feed adapters polled every cycle
            store: Aggregation store this scheduler writes to
            hub: Subscriber hub to push snapshots to (optional)
            mirror: Durable mirror to write snapshots to (optional)
            refresh_period: Seconds between cycle starts
            fetch_timeout: Seconds to wait for all adapters per cycle
            clock: Source of cycle timestamps (unix seconds)
        """
        self.adapters = list(adapters)
        self.store = store
        self.hub = hub
        self.mirror = mirror
        self.refresh_period = refresh_period or config.refresh.period_seconds
        self.fetch_timeout = fetch_timeout or config.refresh.fetch_timeout_seconds
        self._clock = clock

        # State tracking
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._cycle_lock = threading.Lock()
        self._cycle_count: int = 0
        self._error_count: int = 0
        self._last_cycle_time: Optional[float] = None
        self._last_cycle_ms: Optional[float] = None
        self._fatal: Optional[BaseException] = None
        # Last fetch per adapter; a timed-out fetch keeps running in its thread
        self._inflight: Dict[int, Future] = {}

        # Callbacks for external integration
        self._on_cycle_callbacks: List[Callable[[StoreSnapshot], None]] = []

    def add_cycle_callback(self, callback: Callable[[StoreSnapshot], None]) -> None:
        """
        Register callback to be invoked after each published cycle.

        Callback receives the new snapshot. Errors are logged, not raised.
        """
        self._on_cycle_callbacks.append(callback)

    # -------------------------------------------------------------------------
    # Cycle
    # -------------------------------------------------------------------------

    def _fetch_all(self) -> List[FeedResult]:
        """
        Run every adapter concurrently.

        Adapters that have not finished within fetch_timeout count as
        failed for this cycle. Their threads are abandoned, not joined, and
        the adapter is skipped until that fetch returns, so one adapter
        never has two fetches running at once.
        """
        results: List[FeedResult] = []
        ready: List[FeedAdapter] = []
        for adapter in self.adapters:
            previous = self._inflight.get(id(adapter))
            if previous is not None and not previous.done():
                logger.warning(f'{adapter.name} skipped: previous fetch still in flight')
                results.append(FeedResult.failed(adapter.name, 'previous fetch still in flight'))
            else:
                ready.append(adapter)

        if not ready:
            return results

        executor = ThreadPoolExecutor(
            max_workers=len(ready),
            thread_name_prefix='feed',
        )
        try:
            futures = {executor.submit(adapter.fetch): adapter for adapter in ready}
            for future, adapter in futures.items():
                self._inflight[id(adapter)] = future
            done, _ = wait(futures, timeout=self.fetch_timeout)

            for future, adapter in futures.items():
                if future in done:
                    results.append(future.result())
                else:
                    logger.error(f'{adapter.name} fetch timed out after {self.fetch_timeout:g}s')
                    results.append(FeedResult.failed(
                        adapter.name,
                        f'timed out after {self.fetch_timeout:g}s',
                        self.fetch_timeout * 1000,
                    ))
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def run_cycle(self) -> StoreSnapshot:
        """
        Execute one fetch -> merge -> evict -> publish cycle.

        Returns the published snapshot.

        Raises:
            StoreConsistencyViolation if a cycle is already running
        """
        if not self._cycle_lock.acquire(blocking=False):
            raise StoreConsistencyViolation('run_cycle() called while a cycle is in flight')

        try:
            start = time.perf_counter()

            # Stage 1: Fetch
            results = self._fetch_all()

            observations: List[Observation] = []
            sources: Dict[str, SourceStatus] = {}
            for result in results:
                observations.extend(result.observations)
                sources[result.source] = result.to_status()

            # Stages 2-4: Merge, evict, swap
            snapshot = self.store.apply_cycle(observations, now=self._clock(), sources=sources)

            # Stage 4: Push
            if self.hub is not None:
                self.hub.publish(snapshot)

            # Stage 5: Mirror
            if self.mirror is not None:
                try:
                    self.mirror.write(snapshot)
                except PersistenceError as e:
                    logger.error(f'{e}; will retry next cycle')

            self._cycle_count += 1
            self._last_cycle_time = snapshot.generated_at
            self._last_cycle_ms = (time.perf_counter() - start) * 1000

            failed = [name for name, status in sources.items() if not status.ok]
            if failed:
                logger.warning(f'Cycle {snapshot.cycle} completed without: {", ".join(failed)}')

            # Notify callbacks
            for callback in self._on_cycle_callbacks:
                try:
                    callback(snapshot)
                except Exception as e:
                    logger.error(f'Cycle callback error: {e}')

            return snapshot
        finally:
            self._cycle_lock.release()

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    def run_continuous(self) -> None:
        """
        Run cycles until stop() is called.

        This method blocks - use start_background() for non-blocking.
        """
        logger.info(f'Starting refresh loop (period={self.refresh_period:g}s, '
                    f'{len(self.adapters)} feeds)')

        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                self.run_cycle()
            except StoreConsistencyViolation as e:
                self._fatal = e
                logger.critical(f'Store invariant broken, stopping refresh loop: {e}')
                self._stop_event.set()
                raise
            except Exception as e:
                self._error_count += 1
                logger.exception(f'Refresh cycle error: {e}')

            # Overrunning cycles push the next one back rather than overlap
            remaining = self.refresh_period - (time.monotonic() - started)
            if remaining > 0:
                self._stop_event.wait(remaining)

        logger.info('Refresh loop stopped')

    def start_background(self) -> None:
        """Start the refresh loop in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning('Refresh loop already running')
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_continuous,
            name='refresh-scheduler',
            daemon=True,
        )
        self._thread.start()
        logger.info('Background refresh started')

    def stop(self, grace_seconds: Optional[float] = None) -> bool:
        """
        Stop the refresh loop and close subscriber streams.

        Waits up to grace_seconds for an in-flight cycle to finish; after
        that the daemon thread is abandoned.

        Returns True if the loop exited within the grace period.
        """
        grace_seconds = config.refresh.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        self._stop_event.set()

        drained = True
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=grace_seconds)
            drained = not self._thread.is_alive()
            if not drained:
                logger.warning(f'In-flight cycle did not finish within {grace_seconds:g}s, abandoning it')

        if self.hub is not None:
            self.hub.close_all()

        for adapter in self.adapters:
            adapter.close()

        if self.mirror is not None:
            self.mirror.close()

        logger.info('Refresh scheduler stopped')
        return drained

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive() and not self._stop_event.is_set())

    @property
    def stats(self) -> dict:
        """Get refresh loop statistics."""
        snapshot = self.store.snapshot()
        return {
            'cycle_count': self._cycle_count,
            'error_count': self._error_count,
            'last_cycle_time': self._last_cycle_time,
            'last_cycle_ms': round(self._last_cycle_ms, 1) if self._last_cycle_ms is not None else None,
            'refresh_period': self.refresh_period,
            'fetch_timeout': self.fetch_timeout,
            'running': self.running,
            'fatal_error': str(self._fatal) if self._fatal else None,
            'sources': snapshot.source_summary(),
        }
