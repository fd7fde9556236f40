from pydantic import BaseModel, Field
from typing import Callable, List, Optional, Dict
from datetime import datetime, timezone
from enum import Enum


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# Hub API group and well-known keys
HUB_API_DOMAIN = "open-cluster-management.io"
HUB_API_GROUP = "cluster.open-cluster-management.io"
HUB_API_VERSION = "v1"

CONDITION_AVAILABLE = "ManagedClusterConditionAvailable"
CONDITION_JOINED = "ManagedClusterJoined"
CONDITION_TRUE = "True"

TAINT_EFFECT_NO_SELECT = "NoSelect"
TAINT_EFFECT_PREFER_NO_SELECT = "PreferNoSelect"

CLAIM_REGION = "region.open-cluster-management.io"
CLAIM_PROVIDER = "provider.open-cluster-management.io"
CLAIM_NODE_COUNT = "node.count.open-cluster-management.io"
CLAIM_CPU_CORES = "cpu.cores.open-cluster-management.io"
CLAIM_MEMORY_GB = "memory.gb.open-cluster-management.io"
CLAIM_STORAGE_GB = "storage.gb.open-cluster-management.io"

LABEL_CLUSTER_PROVIDER = "cluster.open-cluster-management.io/provider"
LABEL_CLUSTER_REGION = "cluster.open-cluster-management.io/region"
LABEL_DISPLAY_NAME = "cluster.open-cluster-management.io/display-name"
LABEL_INSTANCE_TYPE = "node.kubernetes.io/instance-type"
LABEL_ENVIRONMENT = "environment"

# Zone labels written by the sync engine
ZONE_DOMAIN = "zone.mce-sync.io"
LABEL_MANAGED_BY = "managed-by"
LABEL_ZONE_TYPE = f"{ZONE_DOMAIN}/type"
LABEL_ZONE_CLUSTER_NAME = f"{ZONE_DOMAIN}/cluster-name"
LABEL_ZONE_SYNC_SOURCE = f"{ZONE_DOMAIN}/sync-source"
LABEL_ZONE_PROVIDER = f"{ZONE_DOMAIN}/provider"
LABEL_ZONE_REGION = f"{ZONE_DOMAIN}/region"
MANAGED_BY_VALUE = "mce-zone-sync"
ZONE_TYPE_VALUE = "hub-managed"
SYNC_SOURCE_VALUE = "hub"


class ClusterStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    PENDING_ACCEPTANCE = "pending-acceptance"
    JOINING = "joining"
    MAINTENANCE = "maintenance"
    UNKNOWN = "unknown"


class ZoneStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    MAINTENANCE = "maintenance"


class ClusterCondition(BaseModel):
    type: str
    status: str = "Unknown"
    reason: Optional[str] = None
    message: Optional[str] = None


class ClusterClaim(BaseModel):
    name: str
    value: str = ""


class ClusterTaint(BaseModel):
    key: str
    value: Optional[str] = None
    effect: str
    time_added: Optional[datetime] = Field(None, alias="timeAdded")

    class Config:
        populate_by_name = True


class ManagedClusterRecord(BaseModel):
    """Snapshot of one ManagedCluster as reported by the hub."""
    name: str
    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}
    hub_accepts_client: bool = Field(False, alias="hubAcceptsClient")
    api_endpoint: str = ""
    taints: List[ClusterTaint] = []
    conditions: List[ClusterCondition] = []
    claims: List[ClusterClaim] = []
    capacity: Dict[str, str] = {}
    allocatable: Dict[str, str] = {}
    kube_version: str = ""

    class Config:
        populate_by_name = True

    def condition(self, condition_type: str) -> Optional[ClusterCondition]:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


class ClusterInfo(BaseModel):
    name: str
    display_name: str = ""
    api_endpoint: str = ""
    status: ClusterStatus = ClusterStatus.UNKNOWN
    kube_version: str = ""
    region: str = ""
    provider: str = ""
    node_count: int = 0

    # Capacity in whole cores / GB
    cpu_cores: int = 0
    memory_gb: int = 0
    storage_gb: int = 0

    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}
    claims: Dict[str, str] = {}

    available: bool = False
    accepted: bool = False
    last_seen: datetime = Field(default_factory=utc_now)


class Zone(BaseModel):
    id: str
    name: str
    cluster_name: str
    api_url: str = ""
    status: ZoneStatus = ZoneStatus.UNAVAILABLE
    region: str = ""
    cloud_provider: str = ""
    node_count: int = 0

    cpu_capacity: int = 0
    memory_capacity: int = 0
    storage_capacity: int = 0

    cpu_quota: int = 0
    memory_quota: int = 0
    storage_quota: int = 0

    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}

    last_sync: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def is_managed(self) -> bool:
        """Whether the zone carries the sync engine's management marker."""
        if LABEL_MANAGED_BY in self.labels:
            return self.labels[LABEL_MANAGED_BY] == MANAGED_BY_VALUE
        return self.labels.get(LABEL_ZONE_TYPE) == ZONE_TYPE_VALUE


class ReconcileResult(BaseModel):
    zones_created: int = 0
    zones_updated: int = 0
    zones_deleted: int = 0
    zones_unchanged: int = 0
    zones_preserved: int = 0
    failures: int = 0
    created_ids: List[str] = []
    updated_ids: List[str] = []
    deleted_ids: List[str] = []


class SyncResult(BaseModel):
    timestamp: datetime = Field(default_factory=utc_now)
    success: bool = False
    clusters_found: int = 0
    zones_created: int = 0
    zones_updated: int = 0
    zones_deleted: int = 0
    error_message: Optional[str] = None
    processing_time_ms: int = 0


class ZoneSyncError(Exception):
    """Base class for zone sync errors."""


class HubRegistryError(ZoneSyncError):
    """The hub registry could not answer a request."""


class HubNotInstalledError(HubRegistryError):
    """The ManagedCluster API is not served by the hub."""


class ClusterNotFoundError(HubRegistryError):
    pass


class NormalizationError(ZoneSyncError):
    pass


class TranslationError(ZoneSyncError):
    pass


class ZoneStoreError(ZoneSyncError):
    pass


class ZoneNotFoundError(ZoneStoreError):
    pass


class ZoneAlreadyExistsError(ZoneStoreError):
    pass


class SyncConfigError(ZoneSyncError):
    pass


class SchedulerAlreadyRunningError(ZoneSyncError):
    pass


class SyncInProgressError(ZoneSyncError):
    pass
