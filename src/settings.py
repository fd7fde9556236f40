import os
import yaml
import logging
from typing import Dict, List, Optional
from pydantic import BaseModel, ValidationError, model_validator
from models import SyncConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = '/etc/mce-zone-sync/config.yaml'
DEFAULT_NAMESPACE = 'open-cluster-management'
DEFAULT_INTERVAL_SECONDS = 600
DEFAULT_QUOTA_PERCENTAGE = 80
MIN_INTERVAL_SECONDS = 60


class SyncConfig(BaseModel):
    """Configuration for hub cluster discovery and zone sync."""
    enabled: bool = False
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    hub_kubeconfig: Optional[str] = None
    in_cluster: bool = True
    namespace: str = DEFAULT_NAMESPACE
    auto_create_zones: bool = True
    zone_prefix: str = ""
    default_quota_percentage: int = DEFAULT_QUOTA_PERCENTAGE
    excluded_clusters: List[str] = []
    required_labels: Dict[str, str] = {}

    class Config:
        validate_assignment = True

    @model_validator(mode='after')
    def check_limits(self):
        if self.enabled:
            if self.interval_seconds <= 0:
                raise ValueError("sync interval must be positive")
            if self.interval_seconds < MIN_INTERVAL_SECONDS:
                raise ValueError("sync interval must be at least 1 minute")
        if self.default_quota_percentage < 0 or self.default_quota_percentage > 100:
            raise ValueError("quota percentage must be between 0 and 100")
        return self


def build_sync_config(**values) -> SyncConfig:
    """Create a SyncConfig, raising SyncConfigError on invalid values."""
    try:
        return SyncConfig(**values)
    except ValidationError as e:
        raise SyncConfigError(f"invalid sync config: {e}") from e


def default_sync_config() -> SyncConfig:
    return SyncConfig()


def enabled_sync_config(kubeconfig: Optional[str] = None) -> SyncConfig:
    return build_sync_config(enabled=True, hub_kubeconfig=kubeconfig,
                             in_cluster=kubeconfig is None)


def load_sync_config() -> SyncConfig:
    """Load sync configuration from the config file or environment."""
    config_file = os.environ.get('ZONE_SYNC_CONFIG_FILE', DEFAULT_CONFIG_FILE)

    if os.path.exists(config_file):
        logger.info(f"Loading sync config from {config_file}")
        with open(config_file, 'r') as f:
            config_data = yaml.safe_load(f) or {}
        return parse_sync_config(config_data)

    logger.info("Loading sync config from environment variables")
    return _load_from_env()


def parse_sync_config(config_data: dict) -> SyncConfig:
    """Parse sync configuration from a dict, optionally nested under 'sync'."""
    if not isinstance(config_data, dict):
        raise SyncConfigError("sync config must be a mapping")
    section = config_data.get('sync', config_data) or {}
    return build_sync_config(**section)


def _load_from_env() -> SyncConfig:
    # Format: ZONE_SYNC_REQUIRED_LABELS=environment=prod,tier=gold
    values = {
        'enabled': _env_bool('ZONE_SYNC_ENABLED', False),
        'interval_seconds': _env_int('ZONE_SYNC_INTERVAL', DEFAULT_INTERVAL_SECONDS),
        'namespace': os.environ.get('ZONE_SYNC_NAMESPACE', DEFAULT_NAMESPACE),
        'auto_create_zones': _env_bool('ZONE_SYNC_AUTO_CREATE', True),
        'zone_prefix': os.environ.get('ZONE_SYNC_PREFIX', ''),
        'default_quota_percentage': _env_int('ZONE_SYNC_QUOTA_PERCENTAGE', DEFAULT_QUOTA_PERCENTAGE),
        'excluded_clusters': [
            name.strip() for name in os.environ.get('ZONE_SYNC_EXCLUDED_CLUSTERS', '').split(',')
            if name.strip()
        ],
        'required_labels': _parse_label_pairs(os.environ.get('ZONE_SYNC_REQUIRED_LABELS', '')),
        'hub_kubeconfig': os.environ.get('HUB_KUBECONFIG') or None,
        'in_cluster': _env_bool('IN_CLUSTER', True),
    }
    return build_sync_config(**values)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise SyncConfigError(f"{name} must be an integer, got {raw!r}") from e


def _parse_label_pairs(raw: str) -> Dict[str, str]:
    labels = {}
    for pair in raw.split(','):
        pair = pair.strip()
        if not pair:
            continue
        if '=' not in pair:
            raise SyncConfigError(f"required label {pair!r} must be in key=value form")
        key, value = pair.split('=', 1)
        labels[key.strip()] = value.strip()
    return labels
