import asyncio
import logging
import threading
import time
from typing import Any, Dict, Optional

from collector import ClusterDiscovery
from models import (
    Clock, SyncResult, SchedulerAlreadyRunningError, SyncInProgressError, utc_now,
)
from prometheus_exporter import SyncMetricsExporter
from reconciler import ZoneReconciler
from settings import SyncConfig
from translator import ZoneTranslator
from zone_store import ZoneStore

logger = logging.getLogger(__name__)


class ZoneSyncScheduler:
    """Runs discovery and reconciliation once at start and then on a fixed interval.

    At most one cycle runs at a time: a cycle requested while another is in
    flight raises SyncInProgressError instead of queueing.
    """

    def __init__(self, discovery: ClusterDiscovery, translator: ZoneTranslator,
                 reconciler: ZoneReconciler, store: ZoneStore, sync_config: SyncConfig,
                 exporter: Optional[SyncMetricsExporter] = None, clock: Optional[Clock] = None):
        self.discovery = discovery
        self.translator = translator
        self.reconciler = reconciler
        self.store = store
        self.config = sync_config
        self.exporter = exporter
        self.clock = clock or utc_now

        self.interval_seconds: float = sync_config.interval_seconds
        self.running = False
        self.last_result: Optional[SyncResult] = None

        self._cycle_lock = threading.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        if self.running:
            raise SchedulerAlreadyRunningError("zone sync is already running")

        if not self.config.enabled:
            logger.info("Hub zone sync is disabled")
            return

        self.running = True
        self._stop_event = asyncio.Event()
        logger.info(f"Starting hub zone sync with interval: {self.interval_seconds}s")

        try:
            result = await asyncio.to_thread(self.perform_sync)
            if not result.success:
                logger.error(f"Initial zone sync failed: {result.error_message}")
        except SyncInProgressError:
            logger.warning("Initial zone sync skipped: a manual sync is already in progress")
        except Exception as e:
            logger.error(f"Initial zone sync failed: {e}", exc_info=True)

        self._task = asyncio.create_task(self._sync_loop(self._stop_event))

    async def stop(self):
        if not self.running:
            return

        logger.info("Stopping hub zone sync")
        self.running = False
        self._stop_event.set()
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _sync_loop(self, stop_event: asyncio.Event):
        """Background task performing one cycle per interval until stopped or cancelled."""
        while True:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                logger.info("Zone sync loop stopped")
                break
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                self._mark_cancelled()
                break

            try:
                await asyncio.to_thread(self.perform_sync)
            except SyncInProgressError:
                logger.warning("Skipping scheduled zone sync: a cycle is already in progress")
            except asyncio.CancelledError:
                self._mark_cancelled()
                break
            except Exception as e:
                logger.error(f"Periodic zone sync failed: {e}", exc_info=True)

    def _mark_cancelled(self):
        logger.info("Zone sync loop cancelled")
        self.running = False
        self._task = None

    def perform_sync(self) -> SyncResult:
        """Run one discovery and reconcile cycle now, outside the timer.

        Raises:
            SyncInProgressError: if another cycle is currently running.
        """
        if not self._cycle_lock.acquire(blocking=False):
            raise SyncInProgressError("a zone sync cycle is already in progress")
        try:
            result = self._run_cycle()
        finally:
            self._cycle_lock.release()

        self.last_result = result
        self._log_result(result)
        if self.exporter:
            self.exporter.record_sync(result)
        return result

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def _run_cycle(self) -> SyncResult:
        start_time = time.monotonic()
        result = SyncResult(timestamp=self.clock(), success=False)

        try:
            logger.debug("Starting hub zone synchronization")

            try:
                clusters = self.discovery.discover()
            except Exception as e:
                result.error_message = f"cluster discovery failed: {e}"
                return result
            result.clusters_found = len(clusters)

            try:
                desired = self.translator.to_zones(clusters)
            except Exception as e:
                result.error_message = f"zone conversion failed: {e}"
                return result

            try:
                existing = self.store.list_zones()
            except Exception as e:
                result.error_message = f"failed to list existing zones: {e}"
                return result

            outcome = self.reconciler.reconcile(desired, existing)
            result.zones_created = outcome.zones_created
            result.zones_updated = outcome.zones_updated
            result.zones_deleted = outcome.zones_deleted
            if outcome.failures:
                logger.warning(f"Zone sync skipped {outcome.failures} zones after store errors")
            result.success = True
            return result
        finally:
            result.processing_time_ms = int((time.monotonic() - start_time) * 1000)

    @staticmethod
    def _log_result(result: SyncResult):
        if result.success:
            logger.info(f"Zone sync completed: clusters={result.clusters_found}, "
                        f"created={result.zones_created}, updated={result.zones_updated}, "
                        f"deleted={result.zones_deleted}, duration={result.processing_time_ms}ms")
        else:
            logger.error(f"Zone sync failed after {result.processing_time_ms}ms: {result.error_message}")

    def get_status(self) -> Dict[str, Any]:
        return {
            'enabled': self.config.enabled,
            'running': self.running,
            'interval_seconds': self.interval_seconds,
            'auto_create': self.config.auto_create_zones,
            'namespace': self.config.namespace,
            'cycle_in_progress': self.cycle_in_progress,
            'last_result': self.last_result.model_dump(mode='json') if self.last_result else None,
        }
