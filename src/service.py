import logging
from typing import Any, Dict, List, Optional, Union

from collector import ClusterDiscovery, HubRegistrySource, KubernetesHubSource
from models import Clock, ClusterInfo, SyncResult, SchedulerAlreadyRunningError, utc_now
from normalizer import ClusterNormalizer
from prometheus_exporter import SyncMetricsExporter
from reconciler import ZoneReconciler
from scheduler import ZoneSyncScheduler
from settings import SyncConfig, build_sync_config
from translator import ZoneTranslator
from zone_store import ZoneStore

logger = logging.getLogger(__name__)


class ZoneSyncService:
    """High-level entry point wiring hub discovery to the zone store."""

    def __init__(self, source: HubRegistrySource, store: ZoneStore, sync_config: SyncConfig,
                 exporter: Optional[SyncMetricsExporter] = None, clock: Optional[Clock] = None):
        self.source = source
        self.store = store
        self.config = sync_config
        self.clock = clock or utc_now
        self.exporter = exporter

        self.discovery = ClusterDiscovery(source, sync_config, ClusterNormalizer(self.clock))
        self.translator = ZoneTranslator(sync_config, self.clock)
        self.reconciler = ZoneReconciler(store, sync_config, self.clock)
        self.scheduler = ZoneSyncScheduler(
            self.discovery, self.translator, self.reconciler, store, sync_config,
            exporter=exporter, clock=self.clock
        )
        self._started = False
        logger.info("Zone sync service created successfully")

    @property
    def started(self) -> bool:
        """True while started and the scheduler loop has not been cancelled."""
        return self._started and self.scheduler.running

    @classmethod
    def from_config(cls, sync_config: SyncConfig, store: ZoneStore,
                    exporter: Optional[SyncMetricsExporter] = None) -> 'ZoneSyncService':
        """Build a service talking to the hub described by ``sync_config``."""
        source = KubernetesHubSource(
            in_cluster=sync_config.in_cluster,
            kubeconfig=sync_config.hub_kubeconfig
        )
        return cls(source, store, sync_config, exporter=exporter)

    async def start(self):
        if self.started:
            raise SchedulerAlreadyRunningError("zone sync service is already started")

        if not self.config.enabled:
            logger.info("Zone sync service is disabled")
            return

        logger.info("Starting zone sync service")
        await self.scheduler.start()
        self._started = True
        logger.info("Zone sync service started successfully")

    async def stop(self):
        if not self._started:
            return

        logger.info("Stopping zone sync service")
        await self.scheduler.stop()
        self._started = False
        logger.info("Zone sync service stopped")

    def discover_clusters(self) -> List[ClusterInfo]:
        return self.discovery.discover()

    def sync_zones(self) -> SyncResult:
        """Run one sync cycle now; raises SyncInProgressError if one is running."""
        return self.scheduler.perform_sync()

    def get_cluster_info(self, cluster_name: str) -> ClusterInfo:
        return self.discovery.get_cluster_info(cluster_name)

    def test_connection(self):
        self.source.list_managed_clusters()
        logger.info("Hub connection test successful")

    def get_sync_status(self) -> Dict[str, Any]:
        status = self.scheduler.get_status()
        status['started'] = self.started
        return status

    def get_metrics(self) -> Dict[str, Any]:
        return {
            'started': self.started,
            'config_enabled': self.config.enabled,
            'auto_create_zones': self.config.auto_create_zones,
            'sync_interval_seconds': self.config.interval_seconds,
            'excluded_clusters': len(self.config.excluded_clusters),
            'required_labels': len(self.config.required_labels),
            'quota_percentage': self.config.default_quota_percentage,
        }

    def get_config(self) -> SyncConfig:
        return self.config.model_copy(deep=True)

    def update_config(self, new_config: Union[SyncConfig, Dict[str, Any]]):
        """Validate and store a new configuration; it applies after a restart."""
        if isinstance(new_config, dict):
            new_config = build_sync_config(**new_config)
        else:
            new_config = build_sync_config(**new_config.model_dump())

        self.config = new_config
        logger.info("Zone sync configuration updated (restart required for changes to take effect)")
