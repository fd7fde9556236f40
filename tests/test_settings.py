import pytest

from models import SyncConfigError
from settings import (
    DEFAULT_INTERVAL_SECONDS, DEFAULT_QUOTA_PERCENTAGE, SyncConfig,
    build_sync_config, default_sync_config, enabled_sync_config, load_sync_config, parse_sync_config,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("ZONE_SYNC_ENABLED", "ZONE_SYNC_INTERVAL", "ZONE_SYNC_NAMESPACE", "ZONE_SYNC_AUTO_CREATE",
                 "ZONE_SYNC_PREFIX", "ZONE_SYNC_QUOTA_PERCENTAGE", "ZONE_SYNC_EXCLUDED_CLUSTERS",
                 "ZONE_SYNC_REQUIRED_LABELS", "HUB_KUBECONFIG", "IN_CLUSTER"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ZONE_SYNC_CONFIG_FILE", str(tmp_path / "missing.yaml"))
    return monkeypatch


class TestSyncConfig:
    def test_defaults(self):
        config = default_sync_config()
        assert config.enabled is False
        assert config.interval_seconds == DEFAULT_INTERVAL_SECONDS
        assert config.default_quota_percentage == DEFAULT_QUOTA_PERCENTAGE
        assert config.auto_create_zones is True
        assert config.excluded_clusters == []

    def test_enabled_sync_config(self):
        config = enabled_sync_config("/tmp/kubeconfig")
        assert config.enabled is True
        assert config.hub_kubeconfig == "/tmp/kubeconfig"
        assert config.in_cluster is False

    @pytest.mark.parametrize("values", [
        dict(enabled=True, interval_seconds=0),
        dict(enabled=True, interval_seconds=-5),
        dict(enabled=True, interval_seconds=59),
        dict(default_quota_percentage=-1),
        dict(default_quota_percentage=101),
    ])
    def test_invalid(self, values):
        with pytest.raises(SyncConfigError):
            build_sync_config(**values)

    def test_short_interval_allowed_when_disabled(self):
        assert build_sync_config(enabled=False, interval_seconds=5).interval_seconds == 5

    @pytest.mark.parametrize("pct", [0, 1, 100])
    def test_percentage_bounds(self, pct):
        assert build_sync_config(default_quota_percentage=pct).default_quota_percentage == pct

    def test_assignment_is_validated(self):
        config = SyncConfig()
        with pytest.raises(ValueError):
            config.default_quota_percentage = 150


class TestParseSyncConfig:
    def test_nested_section(self):
        config = parse_sync_config({"sync": {"enabled": True, "interval_seconds": 120, "zone_prefix": "acm"}})
        assert config.enabled is True
        assert config.interval_seconds == 120
        assert config.zone_prefix == "acm"

    def test_flat_mapping(self):
        assert parse_sync_config({"excluded_clusters": ["local-cluster"]}).excluded_clusters == ["local-cluster"]

    def test_empty_section(self):
        assert parse_sync_config({"sync": None}) == SyncConfig()

    def test_not_a_mapping(self):
        with pytest.raises(SyncConfigError):
            parse_sync_config(["enabled"])


class TestLoadSyncConfig:
    def test_from_file(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "sync:\n"
            "  enabled: true\n"
            "  interval_seconds: 300\n"
            "  required_labels:\n"
            "    environment: prod\n"
        )
        clean_env.setenv("ZONE_SYNC_CONFIG_FILE", str(path))
        config = load_sync_config()
        assert config.enabled is True
        assert config.interval_seconds == 300
        assert config.required_labels == {"environment": "prod"}

    def test_empty_file(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        clean_env.setenv("ZONE_SYNC_CONFIG_FILE", str(path))
        assert load_sync_config() == SyncConfig()

    def test_from_env(self, clean_env):
        clean_env.setenv("ZONE_SYNC_ENABLED", "true")
        clean_env.setenv("ZONE_SYNC_INTERVAL", "900")
        clean_env.setenv("ZONE_SYNC_PREFIX", "hub")
        clean_env.setenv("ZONE_SYNC_EXCLUDED_CLUSTERS", "local-cluster, staging ,")
        clean_env.setenv("ZONE_SYNC_REQUIRED_LABELS", "environment=prod,tier=gold")
        clean_env.setenv("HUB_KUBECONFIG", "/etc/hub/kubeconfig")
        clean_env.setenv("IN_CLUSTER", "false")

        config = load_sync_config()
        assert config.enabled is True
        assert config.interval_seconds == 900
        assert config.zone_prefix == "hub"
        assert config.excluded_clusters == ["local-cluster", "staging"]
        assert config.required_labels == {"environment": "prod", "tier": "gold"}
        assert config.hub_kubeconfig == "/etc/hub/kubeconfig"
        assert config.in_cluster is False

    def test_env_defaults(self, clean_env):
        assert load_sync_config() == SyncConfig()

    def test_bad_integer(self, clean_env):
        clean_env.setenv("ZONE_SYNC_INTERVAL", "ten")
        with pytest.raises(SyncConfigError):
            load_sync_config()

    def test_bad_label_pair(self, clean_env):
        clean_env.setenv("ZONE_SYNC_REQUIRED_LABELS", "environment")
        with pytest.raises(SyncConfigError):
            load_sync_config()
