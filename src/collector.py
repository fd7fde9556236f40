import logging
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from pydantic import ValidationError
from models import (
    ManagedClusterRecord, ClusterCondition, ClusterClaim, ClusterTaint, ClusterInfo,
    HubRegistryError, HubNotInstalledError, ClusterNotFoundError, NormalizationError,
    HUB_API_GROUP, HUB_API_VERSION,
)
from normalizer import ClusterNormalizer
from settings import SyncConfig

logger = logging.getLogger(__name__)

MANAGED_CLUSTER_PLURAL = "managedclusters"


class HubRegistrySource(ABC):
    """Read-only view of the hub's ManagedCluster registry."""

    @abstractmethod
    def list_managed_clusters(self) -> List[ManagedClusterRecord]:
        ...

    @abstractmethod
    def get_managed_cluster(self, name: str) -> ManagedClusterRecord:
        ...


class KubernetesHubSource(HubRegistrySource):
    def __init__(self, in_cluster: bool = True, kubeconfig: Optional[str] = None,
                 api_client: Optional[client.ApiClient] = None):
        """Initialize the hub source.

        Args:
            in_cluster: Whether running inside the hub cluster or not
            kubeconfig: Explicit kubeconfig path, used when not in cluster
            api_client: Pre-built API client, skips config loading
        """
        if api_client is None:
            if in_cluster and not kubeconfig:
                config.load_incluster_config()
            else:
                config.load_kube_config(config_file=kubeconfig)
            api_client = client.ApiClient()

        self.api = api_client
        self.custom_api = client.CustomObjectsApi(self.api)
        self.apis_api = client.ApisApi(self.api)

    def list_managed_clusters(self) -> List[ManagedClusterRecord]:
        """List all ManagedCluster resources on the hub."""
        try:
            mc_list = self.custom_api.list_cluster_custom_object(
                group=HUB_API_GROUP,
                version=HUB_API_VERSION,
                plural=MANAGED_CLUSTER_PLURAL
            )
        except ApiException as e:
            logger.error(f"Hub API call failed: {e.status} {e.reason}")
            raise self._classify_error(e) from e

        records = []
        for item in mc_list.get('items', []):
            try:
                record = self.decode_managed_cluster(item)
            except (ValidationError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed ManagedCluster: {e}")
                continue
            if record is None:
                logger.warning("Skipping ManagedCluster without a name")
                continue
            records.append(record)

        logger.debug(f"Found {len(records)} managed clusters")
        return records

    def get_managed_cluster(self, name: str) -> ManagedClusterRecord:
        try:
            item = self.custom_api.get_cluster_custom_object(
                group=HUB_API_GROUP,
                version=HUB_API_VERSION,
                plural=MANAGED_CLUSTER_PLURAL,
                name=name
            )
        except ApiException as e:
            if e.status == 404 and self._hub_api_installed():
                raise ClusterNotFoundError(f"managed cluster {name} not found") from e
            raise self._classify_error(e) from e

        try:
            record = self.decode_managed_cluster(item)
        except (ValidationError, ValueError, TypeError, AttributeError) as e:
            raise HubRegistryError(f"managed cluster {name} could not be decoded: {e}") from e
        if record is None:
            raise HubRegistryError(f"managed cluster {name} returned without metadata")
        return record

    def test_connection(self):
        """Raise if the hub cannot list managed clusters."""
        self.list_managed_clusters()
        logger.info("Hub connection test successful")

    def _hub_api_installed(self) -> bool:
        try:
            groups = self.apis_api.get_api_versions()
        except ApiException as e:
            logger.warning(f"Could not read API groups from hub: {e.status} {e.reason}")
            return False
        return any(group.name == HUB_API_GROUP for group in (groups.groups or []))

    def _classify_error(self, error: ApiException) -> HubRegistryError:
        if error.status == 404 or not self._hub_api_installed():
            return HubNotInstalledError(
                f"ManagedCluster API '{HUB_API_GROUP}/{HUB_API_VERSION}' is not installed "
                f"or not reachable on the hub: {error.status} {error.reason}"
            )
        return HubRegistryError(
            f"failed to list managed clusters - this may be due to insufficient RBAC "
            f"permissions or the hub not being properly configured: {error.status} {error.reason}"
        )

    @staticmethod
    def decode_managed_cluster(item: Dict[str, Any]) -> Optional[ManagedClusterRecord]:
        """Decode a raw ManagedCluster document; None when it has no name."""
        metadata = item.get('metadata') or {}
        spec = item.get('spec') or {}
        status = item.get('status') or {}

        name = metadata.get('name')
        if not name:
            return None

        client_configs = spec.get('managedClusterClientConfigs') or []
        api_endpoint = client_configs[0].get('url', '') if client_configs else ''

        return ManagedClusterRecord(
            name=name,
            labels=_string_map(metadata.get('labels')),
            annotations=_string_map(metadata.get('annotations')),
            hub_accepts_client=bool(spec.get('hubAcceptsClient', False)),
            api_endpoint=api_endpoint or '',
            taints=[
                ClusterTaint(
                    key=taint.get('key', ''),
                    value=taint.get('value'),
                    effect=taint.get('effect', ''),
                    time_added=taint.get('timeAdded'),
                )
                for taint in spec.get('taints') or []
            ],
            conditions=[
                ClusterCondition(
                    type=cond.get('type', ''),
                    status=cond.get('status', 'Unknown'),
                    reason=cond.get('reason'),
                    message=cond.get('message'),
                )
                for cond in status.get('conditions') or []
            ],
            claims=[
                ClusterClaim(name=claim.get('name', ''), value=str(claim.get('value', '')))
                for claim in status.get('clusterClaims') or []
                if claim.get('name')
            ],
            capacity=_string_map(status.get('capacity')),
            allocatable=_string_map(status.get('allocatable')),
            kube_version=(status.get('version') or {}).get('kubernetes', '') or '',
        )


def _string_map(raw: Optional[Dict[str, Any]]) -> Dict[str, str]:
    if not raw:
        return {}
    return {k: str(v) for k, v in raw.items() if v is not None}


class ClusterDiscovery:
    """Lists hub clusters, applies the configured filters and normalizes the rest."""

    def __init__(self, source: HubRegistrySource, sync_config: SyncConfig,
                 normalizer: Optional[ClusterNormalizer] = None):
        self.source = source
        self.config = sync_config
        self.normalizer = normalizer or ClusterNormalizer()

    def discover(self) -> List[ClusterInfo]:
        """Discover all eligible managed clusters.

        Raises:
            HubRegistryError: if the hub cannot be listed. Per-cluster
                normalization failures are logged and the cluster is skipped.
        """
        logger.debug("Starting cluster discovery from hub")
        records = self.source.list_managed_clusters()

        discovered = []
        for record in records:
            if self.is_excluded(record.name):
                logger.debug(f"Skipping excluded cluster: {record.name}")
                continue

            if not self.has_required_labels(record):
                logger.debug(f"Skipping cluster {record.name}: missing required labels")
                continue

            try:
                info = self.normalizer.normalize(record)
            except (NormalizationError, ValueError) as e:
                logger.warning(f"Failed to process cluster info for {record.name}: {e}")
                continue

            discovered.append(info)
            logger.debug(f"Discovered cluster: {info.name} (status: {info.status.value}, "
                         f"nodes: {info.node_count}, cpu: {info.cpu_cores}, memory: {info.memory_gb}GB)")

        logger.info(f"Discovery completed: found {len(discovered)} clusters "
                    f"(total {len(records)}, filtered {len(records) - len(discovered)})")
        return discovered

    def get_cluster_info(self, name: str) -> ClusterInfo:
        record = self.source.get_managed_cluster(name)
        return self.normalizer.normalize(record)

    def is_excluded(self, cluster_name: str) -> bool:
        return cluster_name in self.config.excluded_clusters

    def has_required_labels(self, record: ManagedClusterRecord) -> bool:
        for key, value in self.config.required_labels.items():
            if record.labels.get(key) != value:
                return False
        return True
