"""Tests for the Kubernetes hub source and ClusterDiscovery filtering."""

import copy
from unittest.mock import MagicMock

import pytest
from kubernetes.client.rest import ApiException

from collector import ClusterDiscovery, KubernetesHubSource
from factories import FakeHubSource, make_record
from models import (
    ClusterNotFoundError, ClusterStatus, HubNotInstalledError, HubRegistryError,
    HUB_API_GROUP, TAINT_EFFECT_NO_SELECT,
)
from normalizer import ClusterNormalizer
from settings import SyncConfig

RAW_CLUSTER = {
    "apiVersion": "cluster.open-cluster-management.io/v1",
    "kind": "ManagedCluster",
    "metadata": {
        "name": "prod-east",
        "uid": "1234",
        "labels": {"environment": "prod", "cloud": "Amazon"},
        "annotations": {"open-cluster-management/created-via": "discovery"},
    },
    "spec": {
        "hubAcceptsClient": True,
        "managedClusterClientConfigs": [{"url": "https://api.prod-east.example.com:6443"}],
        "taints": [{"key": "upgrade", "effect": TAINT_EFFECT_NO_SELECT,
                    "timeAdded": "2025-06-01T10:00:00Z"}],
    },
    "status": {
        "conditions": [
            {"type": "HubClusterAccepted", "status": "True"},
            {"type": "ManagedClusterJoined", "status": "True"},
            {"type": "ManagedClusterConditionAvailable", "status": "True"},
        ],
        "clusterClaims": [
            {"name": "node.count.open-cluster-management.io", "value": "3"},
            {"name": "platform.open-cluster-management.io", "value": "AWS"},
        ],
        "capacity": {"cpu": "12", "memory": "48Gi", "ephemeral-storage": "300Gi"},
        "version": {"kubernetes": "v1.29.4"},
    },
}


def _source() -> KubernetesHubSource:
    source = KubernetesHubSource(api_client=MagicMock())
    source.custom_api = MagicMock()
    source.apis_api = MagicMock()
    return source


def _api_groups(*names):
    groups = []
    for name in names:
        group = MagicMock()
        group.name = name
        groups.append(group)
    return MagicMock(groups=groups)


class TestDecodeManagedCluster:
    def test_full_document(self):
        record = KubernetesHubSource.decode_managed_cluster(RAW_CLUSTER)
        assert record.name == "prod-east"
        assert record.hub_accepts_client is True
        assert record.api_endpoint == "https://api.prod-east.example.com:6443"
        assert record.labels["environment"] == "prod"
        assert record.annotations["open-cluster-management/created-via"] == "discovery"
        assert [t.effect for t in record.taints] == [TAINT_EFFECT_NO_SELECT]
        assert len(record.conditions) == 3
        assert record.claims[0].value == "3"
        assert record.capacity["memory"] == "48Gi"
        assert record.kube_version == "v1.29.4"

    def test_minimal_document(self):
        record = KubernetesHubSource.decode_managed_cluster({"metadata": {"name": "bare"}})
        assert record.name == "bare"
        assert record.hub_accepts_client is False
        assert record.api_endpoint == ""
        assert record.conditions == []

    def test_missing_name(self):
        assert KubernetesHubSource.decode_managed_cluster({"metadata": {}}) is None

    def test_decoded_record_normalizes(self):
        record = KubernetesHubSource.decode_managed_cluster(RAW_CLUSTER)
        info = ClusterNormalizer().normalize(record)
        assert info.status == ClusterStatus.AVAILABLE
        assert (info.node_count, info.cpu_cores, info.memory_gb, info.storage_gb) == (3, 12, 48, 300)


class TestKubernetesHubSource:
    def test_list_managed_clusters(self):
        source = _source()
        source.custom_api.list_cluster_custom_object.return_value = {
            "items": [RAW_CLUSTER, {"metadata": {}}]
        }
        records = source.list_managed_clusters()
        assert [r.name for r in records] == ["prod-east"]
        kwargs = source.custom_api.list_cluster_custom_object.call_args.kwargs
        assert kwargs["group"] == HUB_API_GROUP
        assert kwargs["plural"] == "managedclusters"

    def test_list_not_installed(self):
        source = _source()
        source.custom_api.list_cluster_custom_object.side_effect = ApiException(status=404, reason="Not Found")
        source.apis_api.get_api_versions.return_value = _api_groups("apps")
        with pytest.raises(HubNotInstalledError):
            source.list_managed_clusters()

    def test_list_group_missing_on_forbidden(self):
        source = _source()
        source.custom_api.list_cluster_custom_object.side_effect = ApiException(status=403, reason="Forbidden")
        source.apis_api.get_api_versions.return_value = _api_groups("apps")
        with pytest.raises(HubNotInstalledError):
            source.list_managed_clusters()

    def test_list_forbidden_with_api_installed(self):
        source = _source()
        source.custom_api.list_cluster_custom_object.side_effect = ApiException(status=403, reason="Forbidden")
        source.apis_api.get_api_versions.return_value = _api_groups("apps", HUB_API_GROUP)
        with pytest.raises(HubRegistryError) as exc_info:
            source.list_managed_clusters()
        assert not isinstance(exc_info.value, HubNotInstalledError)
        assert "RBAC" in str(exc_info.value)

    def test_get_missing_cluster(self):
        source = _source()
        source.custom_api.get_cluster_custom_object.side_effect = ApiException(status=404, reason="Not Found")
        source.apis_api.get_api_versions.return_value = _api_groups(HUB_API_GROUP)
        with pytest.raises(ClusterNotFoundError):
            source.get_managed_cluster("nope")

    def test_get_cluster(self):
        source = _source()
        source.custom_api.get_cluster_custom_object.return_value = RAW_CLUSTER
        assert source.get_managed_cluster("prod-east").name == "prod-east"

    def test_list_skips_malformed_document(self):
        malformed = copy.deepcopy(RAW_CLUSTER)
        malformed["metadata"]["name"] = "broken"
        malformed["spec"]["taints"][0]["timeAdded"] = "not-a-date"
        source = _source()
        source.custom_api.list_cluster_custom_object.return_value = {"items": [RAW_CLUSTER, malformed]}
        assert [r.name for r in source.list_managed_clusters()] == ["prod-east"]

    def test_discovery_survives_malformed_document(self):
        malformed = copy.deepcopy(RAW_CLUSTER)
        malformed["metadata"]["name"] = "broken"
        malformed["status"]["conditions"] = "Available"
        source = _source()
        source.custom_api.list_cluster_custom_object.return_value = {"items": [malformed, RAW_CLUSTER]}
        assert [c.name for c in ClusterDiscovery(source, SyncConfig()).discover()] == ["prod-east"]

    def test_get_malformed_cluster(self):
        malformed = copy.deepcopy(RAW_CLUSTER)
        malformed["spec"]["taints"][0]["timeAdded"] = "not-a-date"
        source = _source()
        source.custom_api.get_cluster_custom_object.return_value = malformed
        with pytest.raises(HubRegistryError):
            source.get_managed_cluster("prod-east")


class TestClusterDiscovery:
    def test_discovers_all_without_filters(self):
        hub = FakeHubSource([make_record("a"), make_record("b")])
        discovery = ClusterDiscovery(hub, SyncConfig())
        assert [c.name for c in discovery.discover()] == ["a", "b"]

    def test_excluded_cluster(self):
        hub = FakeHubSource([make_record("a"), make_record("local-cluster", labels={"env": "prod"})])
        config = SyncConfig(excluded_clusters=["local-cluster"], required_labels={"env": "prod"})
        hub.records[0].labels["env"] = "prod"
        discovery = ClusterDiscovery(hub, config)
        assert [c.name for c in discovery.discover()] == ["a"]

    def test_required_labels(self):
        hub = FakeHubSource([
            make_record("match", labels={"env": "prod", "tier": "gold"}),
            make_record("wrong-value", labels={"env": "dev", "tier": "gold"}),
            make_record("missing", labels={"env": "prod"}),
        ])
        config = SyncConfig(required_labels={"env": "prod", "tier": "gold"})
        discovery = ClusterDiscovery(hub, config)
        assert [c.name for c in discovery.discover()] == ["match"]

    def test_normalization_failure_skips_cluster(self):
        hub = FakeHubSource([make_record("good"), make_record("bad")])
        normalizer = ClusterNormalizer()
        original = normalizer.normalize

        def flaky(record):
            if record.name == "bad":
                raise ValueError("corrupt claims")
            return original(record)

        normalizer.normalize = flaky
        discovery = ClusterDiscovery(hub, SyncConfig(), normalizer)
        assert [c.name for c in discovery.discover()] == ["good"]

    def test_list_failure_propagates(self):
        hub = FakeHubSource()
        hub.error = HubNotInstalledError("no hub")
        with pytest.raises(HubNotInstalledError):
            ClusterDiscovery(hub, SyncConfig()).discover()

    def test_get_cluster_info_ignores_filters(self):
        hub = FakeHubSource([make_record("local-cluster")])
        discovery = ClusterDiscovery(hub, SyncConfig(excluded_clusters=["local-cluster"]))
        assert discovery.get_cluster_info("local-cluster").name == "local-cluster"
