import logging
from typing import Dict, List, Optional

from models import (
    Clock, ClusterInfo, ClusterStatus, Zone, ZoneStatus, TranslationError, utc_now,
    HUB_API_DOMAIN, ZONE_DOMAIN, LABEL_ENVIRONMENT, LABEL_MANAGED_BY, LABEL_ZONE_TYPE,
    LABEL_ZONE_CLUSTER_NAME, LABEL_ZONE_SYNC_SOURCE, LABEL_ZONE_PROVIDER, LABEL_ZONE_REGION,
    MANAGED_BY_VALUE, ZONE_TYPE_VALUE, SYNC_SOURCE_VALUE,
)
from settings import SyncConfig, DEFAULT_QUOTA_PERCENTAGE

logger = logging.getLogger(__name__)

ANNOTATION_DESCRIPTION = f"{ZONE_DOMAIN}/description"
ANNOTATION_API_ENDPOINT = f"{ZONE_DOMAIN}/cluster-api-endpoint"
ANNOTATION_KUBE_VERSION = f"{ZONE_DOMAIN}/kubernetes-version"
ANNOTATION_LAST_DISCOVERED = f"{ZONE_DOMAIN}/last-discovered"
ANNOTATION_CLAIM_PREFIX = f"{ZONE_DOMAIN}/claim-"

_PASSTHROUGH_LABELS = (LABEL_ENVIRONMENT, "region", "provider")

_STATUS_MAP = {
    ClusterStatus.AVAILABLE: ZoneStatus.AVAILABLE,
    ClusterStatus.MAINTENANCE: ZoneStatus.MAINTENANCE,
}


def calculate_quota(capacity: int, percentage: int) -> int:
    """Allocatable share of a capacity; out-of-range percentages fall back to the default."""
    if capacity <= 0:
        return 0
    if percentage < 1 or percentage > 100:
        percentage = DEFAULT_QUOTA_PERCENTAGE
    return (capacity * percentage) // 100


def map_cluster_status(status: ClusterStatus) -> ZoneStatus:
    return _STATUS_MAP.get(status, ZoneStatus.UNAVAILABLE)


class ZoneTranslator:
    def __init__(self, sync_config: SyncConfig, clock: Optional[Clock] = None):
        self.config = sync_config
        self.clock = clock or utc_now

    def to_zones(self, clusters: List[ClusterInfo]) -> List[Zone]:
        """Translate every discovered cluster; any failure aborts the batch."""
        zones = []
        for cluster in clusters:
            try:
                zones.append(self.to_zone(cluster))
            except (TypeError, ValueError) as e:
                raise TranslationError(f"failed to convert cluster {cluster.name} to zone: {e}") from e
        return zones

    def to_zone(self, cluster: ClusterInfo) -> Zone:
        now = self.clock()
        pct = self.config.default_quota_percentage

        return Zone(
            id=self.zone_id(cluster.name),
            name=self.zone_name(cluster.name),
            cluster_name=cluster.name,
            api_url=cluster.api_endpoint,
            status=map_cluster_status(cluster.status),
            region=cluster.region,
            cloud_provider=cluster.provider,
            node_count=cluster.node_count,
            cpu_capacity=cluster.cpu_cores,
            memory_capacity=cluster.memory_gb,
            storage_capacity=cluster.storage_gb,
            cpu_quota=calculate_quota(cluster.cpu_cores, pct),
            memory_quota=calculate_quota(cluster.memory_gb, pct),
            storage_quota=calculate_quota(cluster.storage_gb, pct),
            labels=self.zone_labels(cluster),
            annotations=self.zone_annotations(cluster),
            last_sync=now,
            created_at=now,
            updated_at=now,
        )

    def zone_id(self, cluster_name: str) -> str:
        zone_id = cluster_name.lower().replace("_", "-").replace(" ", "-")
        if self.config.zone_prefix:
            zone_id = f"{self.config.zone_prefix}-{zone_id}"
        return zone_id

    def zone_name(self, cluster_name: str) -> str:
        if self.config.zone_prefix:
            return f"{self.config.zone_prefix}-{cluster_name}"
        return cluster_name

    @staticmethod
    def zone_labels(cluster: ClusterInfo) -> Dict[str, str]:
        labels = {}
        for key, value in cluster.labels.items():
            if HUB_API_DOMAIN in key or "cluster." in key or key in _PASSTHROUGH_LABELS:
                labels[key] = value

        labels[LABEL_ZONE_TYPE] = ZONE_TYPE_VALUE
        labels[LABEL_MANAGED_BY] = MANAGED_BY_VALUE
        labels[LABEL_ZONE_CLUSTER_NAME] = cluster.name
        labels[LABEL_ZONE_SYNC_SOURCE] = SYNC_SOURCE_VALUE
        labels[LABEL_ZONE_PROVIDER] = cluster.provider
        labels[LABEL_ZONE_REGION] = cluster.region
        return labels

    def zone_annotations(self, cluster: ClusterInfo) -> Dict[str, str]:
        annotations = {
            ANNOTATION_DESCRIPTION: f"Hub managed cluster: {cluster.name}",
            ANNOTATION_API_ENDPOINT: cluster.api_endpoint,
            ANNOTATION_KUBE_VERSION: cluster.kube_version,
            ANNOTATION_LAST_DISCOVERED: self.clock().isoformat(),
        }

        for claim_name, claim_value in cluster.claims.items():
            annotations[ANNOTATION_CLAIM_PREFIX + claim_name.replace(".", "-")] = claim_value

        for key, value in cluster.annotations.items():
            if HUB_API_DOMAIN in key:
                annotations[key] = value

        return annotations
