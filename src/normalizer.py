import logging
from typing import Dict, Optional

from models import (
    Clock, ClusterInfo, ClusterStatus, ManagedClusterRecord, NormalizationError, utc_now,
    CONDITION_AVAILABLE, CONDITION_JOINED, CONDITION_TRUE, TAINT_EFFECT_NO_SELECT,
    CLAIM_PROVIDER, CLAIM_REGION, CLAIM_NODE_COUNT, CLAIM_CPU_CORES, CLAIM_MEMORY_GB,
    CLAIM_STORAGE_GB, LABEL_CLUSTER_PROVIDER, LABEL_CLUSTER_REGION, LABEL_DISPLAY_NAME,
    LABEL_INSTANCE_TYPE,
)
from quantity import parse_cpu_cores, parse_memory_gb, parse_storage_gb, parse_int_claim

logger = logging.getLogger(__name__)

# Per-node estimates used when a cluster reports no capacity
CPU_PER_NODE = 4
MEMORY_GB_PER_NODE = 16
STORAGE_GB_PER_NODE = 100

UNKNOWN_PROVIDER = "unknown"


class ClusterNormalizer:
    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or utc_now

    def normalize(self, record: ManagedClusterRecord) -> ClusterInfo:
        """Build a ClusterInfo from a raw ManagedCluster snapshot.

        Raises:
            NormalizationError: if the record cannot be turned into a ClusterInfo.
        """
        if not record.name:
            raise NormalizationError("managed cluster record has no name")

        info = ClusterInfo(
            name=record.name,
            display_name=record.name,
            api_endpoint=record.api_endpoint,
            kube_version=record.kube_version,
            labels=dict(record.labels),
            annotations=dict(record.annotations),
            last_seen=self.clock(),
        )

        info.accepted = record.hub_accepts_client
        info.available = self.is_available(record)
        info.status = self.classify_status(record)

        self._apply_claims(record, info)

        if not info.provider:
            info.provider = info.labels.get(LABEL_CLUSTER_PROVIDER, "")
        if not info.region:
            info.region = info.labels.get(LABEL_CLUSTER_REGION, "")

        if info.cpu_cores == 0 or info.memory_gb == 0 or info.storage_gb == 0:
            self._apply_status_capacity(record, info)

        # Negative claims are clamped and then estimated like missing ones
        info.cpu_cores = max(info.cpu_cores, 0)
        info.memory_gb = max(info.memory_gb, 0)
        info.storage_gb = max(info.storage_gb, 0)

        if info.node_count <= 0:
            info.node_count = 1
        if info.cpu_cores == 0 or info.memory_gb == 0 or info.storage_gb == 0:
            estimate_resources(info)

        if not info.provider:
            info.provider = detect_provider(record.labels, record.annotations)

        display_name = info.labels.get(LABEL_DISPLAY_NAME)
        if display_name:
            info.display_name = display_name

        return info

    @staticmethod
    def is_available(record: ManagedClusterRecord) -> bool:
        condition = record.condition(CONDITION_AVAILABLE)
        return condition is not None and condition.status == CONDITION_TRUE

    @staticmethod
    def classify_status(record: ManagedClusterRecord) -> ClusterStatus:
        if not record.hub_accepts_client:
            return ClusterStatus.PENDING_ACCEPTANCE

        available = record.condition(CONDITION_AVAILABLE)
        if available is not None:
            if available.status == CONDITION_TRUE:
                return ClusterStatus.AVAILABLE
            return ClusterStatus.UNAVAILABLE

        joined = record.condition(CONDITION_JOINED)
        if joined is not None and joined.status != CONDITION_TRUE:
            return ClusterStatus.JOINING

        for taint in record.taints:
            if taint.effect == TAINT_EFFECT_NO_SELECT:
                return ClusterStatus.MAINTENANCE

        return ClusterStatus.UNKNOWN

    @staticmethod
    def _apply_claims(record: ManagedClusterRecord, info: ClusterInfo):
        claims: Dict[str, str] = {}
        for claim in record.claims:
            claims[claim.name] = claim.value

            if claim.name == CLAIM_PROVIDER:
                info.provider = claim.value
            elif claim.name == CLAIM_REGION:
                info.region = claim.value
            elif claim.name == CLAIM_NODE_COUNT:
                info.node_count = parse_int_claim(claim.value)
            elif claim.name == CLAIM_CPU_CORES:
                info.cpu_cores = parse_cpu_cores(claim.value)
            elif claim.name == CLAIM_MEMORY_GB:
                info.memory_gb = _parse_gb_claim(claim.value, parse_memory_gb)
            elif claim.name == CLAIM_STORAGE_GB:
                info.storage_gb = _parse_gb_claim(claim.value, parse_storage_gb)

        info.claims = claims

    @staticmethod
    def _apply_status_capacity(record: ManagedClusterRecord, info: ClusterInfo):
        # Reported capacity first, allocatable only for keys capacity lacks
        capacity = {**record.allocatable, **record.capacity}
        if not capacity:
            return
        if info.cpu_cores == 0 and 'cpu' in capacity:
            info.cpu_cores = parse_cpu_cores(capacity['cpu'])
        if info.memory_gb == 0 and 'memory' in capacity:
            info.memory_gb = parse_memory_gb(capacity['memory'])
        if info.storage_gb == 0 and 'ephemeral-storage' in capacity:
            info.storage_gb = parse_storage_gb(capacity['ephemeral-storage'])


def _parse_gb_claim(value: str, parser) -> int:
    # GB claims are usually bare integers; fall back to suffixed quantities
    stripped = str(value).strip()
    if stripped.lstrip('-').isdigit():
        return parse_int_claim(stripped)
    return parser(stripped)


def estimate_resources(info: ClusterInfo):
    """Fill zero capacity fields from the node count, leaving set fields alone."""
    nodes = info.node_count if info.node_count > 0 else 1

    if info.cpu_cores == 0:
        info.cpu_cores = nodes * CPU_PER_NODE
    if info.memory_gb == 0:
        info.memory_gb = nodes * MEMORY_GB_PER_NODE
    if info.storage_gb == 0:
        info.storage_gb = nodes * STORAGE_GB_PER_NODE

    logger.debug(f"Estimated resources for cluster {info.name}: CPU={info.cpu_cores}, "
                 f"Memory={info.memory_gb}GB, Storage={info.storage_gb}GB")


def _provider_from_text(key: str, value: str) -> Optional[str]:
    for provider in ("aws", "azure", "gcp"):
        if provider in key or provider in value:
            return provider
    return None


def detect_provider(labels: Dict[str, str], annotations: Dict[str, str]) -> str:
    """Guess the cloud provider from instance-type labels, then any label or annotation."""
    instance_type = labels.get(LABEL_INSTANCE_TYPE, "")
    if instance_type:
        # AWS: m5.large, t3.medium, c5.xlarge
        if "." in instance_type and instance_type.startswith(("m", "t", "c", "r", "i")):
            return "aws"
        # Azure: Standard_D2s_v3
        if instance_type.startswith("Standard_"):
            return "azure"
        # GCP: e2-medium, n1-standard-1, c2-standard-4
        if "-" in instance_type and instance_type.startswith(("e", "n", "c2")):
            return "gcp"

    for source in (labels, annotations):
        for key, value in source.items():
            provider = _provider_from_text(key, value)
            if provider:
                return provider

    return UNKNOWN_PROVIDER
