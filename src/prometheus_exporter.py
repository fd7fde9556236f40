import os
import logging
from prometheus_client import Gauge, Counter, generate_latest
from prometheus_client.core import CollectorRegistry
from typing import Optional
from models import SyncResult, ZoneStatus
from zone_store import ZoneStore

logger = logging.getLogger(__name__)


class SyncMetricsExporter:
    def __init__(self, store: Optional[ZoneStore] = None):
        self.store = store
        self.registry = CollectorRegistry()
        # Hub cluster name from environment variable or use default
        self.hub_name = os.environ.get('HUB_NAME', 'default-hub')
        self._setup_metrics()

    def _setup_metrics(self):
        """Setup Prometheus metrics."""
        # Discovery metrics
        self.clusters_found = Gauge(
            'mce_zone_sync_clusters_found',
            'Number of managed clusters found in the last successful sync',
            ['hub'],
            registry=self.registry
        )

        # Zone metrics
        self.zones_by_status = Gauge(
            'mce_zone_sync_zones',
            'Number of sync-managed zones by status',
            ['hub', 'status'],
            registry=self.registry
        )

        self.zone_cpu_quota = Gauge(
            'mce_zone_sync_zone_cpu_quota',
            'CPU quota of a sync-managed zone',
            ['hub', 'zone_id', 'cluster_name'],
            registry=self.registry
        )

        self.zone_memory_quota_gb = Gauge(
            'mce_zone_sync_zone_memory_quota_gb',
            'Memory quota in GB of a sync-managed zone',
            ['hub', 'zone_id', 'cluster_name'],
            registry=self.registry
        )

        # Sync run metrics
        self.last_sync_success = Gauge(
            'mce_zone_sync_last_success',
            'Whether the last sync succeeded (1) or failed (0)',
            ['hub'],
            registry=self.registry
        )

        self.last_sync_timestamp = Gauge(
            'mce_zone_sync_last_timestamp_seconds',
            'Unix time of the last sync',
            ['hub'],
            registry=self.registry
        )

        self.sync_duration_seconds = Gauge(
            'mce_zone_sync_duration_seconds',
            'Time taken by the last sync',
            ['hub'],
            registry=self.registry
        )

        self.syncs_total = Counter(
            'mce_zone_sync_runs_total',
            'Total number of sync runs by outcome',
            ['hub', 'outcome'],
            registry=self.registry
        )

        self.zone_changes_total = Counter(
            'mce_zone_sync_zone_changes_total',
            'Total number of zone writes by action',
            ['hub', 'action'],
            registry=self.registry
        )

    def record_sync(self, result: SyncResult):
        """Update Prometheus metrics from a finished sync."""
        outcome = 'success' if result.success else 'failure'
        self.syncs_total.labels(hub=self.hub_name, outcome=outcome).inc()
        self.last_sync_success.labels(hub=self.hub_name).set(1 if result.success else 0)
        self.last_sync_timestamp.labels(hub=self.hub_name).set(result.timestamp.timestamp())
        self.sync_duration_seconds.labels(hub=self.hub_name).set(result.processing_time_ms / 1000)

        if not result.success:
            return

        self.clusters_found.labels(hub=self.hub_name).set(result.clusters_found)
        for action, count in (('created', result.zones_created),
                              ('updated', result.zones_updated),
                              ('deleted', result.zones_deleted)):
            if count:
                self.zone_changes_total.labels(hub=self.hub_name, action=action).inc(count)

    def update_zone_metrics(self):
        """Refresh zone gauges from the store."""
        if self.store is None:
            return

        zones = [zone for zone in self.store.list_zones() if zone.is_managed()]

        # Reset per-zone series so retired zones disappear
        self.zone_cpu_quota.clear()
        self.zone_memory_quota_gb.clear()

        status_counts = {status: 0 for status in ZoneStatus}
        for zone in zones:
            status_counts[zone.status] += 1
            self.zone_cpu_quota.labels(
                hub=self.hub_name, zone_id=zone.id, cluster_name=zone.cluster_name
            ).set(zone.cpu_quota)
            self.zone_memory_quota_gb.labels(
                hub=self.hub_name, zone_id=zone.id, cluster_name=zone.cluster_name
            ).set(zone.memory_quota)

        for status, count in status_counts.items():
            self.zones_by_status.labels(hub=self.hub_name, status=status.value).set(count)

    def generate_metrics(self) -> bytes:
        """Generate metrics in Prometheus format."""
        try:
            self.update_zone_metrics()
        except Exception as e:
            logger.error(f"Error refreshing zone metrics: {e}")
        return generate_latest(self.registry)
