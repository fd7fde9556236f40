"""Diff engine between discovered zones and the zones already persisted.

A cycle creates zones for newly discovered clusters, rewrites zones whose
cluster changed significantly (or whose last sync is stale), and retires
zones whose cluster disappeared. Retirement is two-step: the zone is first
flipped to unavailable and only deleted after a grace period, and never
while workloads are still attached to it.

Only zones carrying the management marker are considered; everything else
in the store is left untouched.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from models import Clock, Zone, ZoneStatus, ReconcileResult, utc_now
from settings import SyncConfig
from translator import calculate_quota
from zone_store import ZoneStore

logger = logging.getLogger(__name__)

CAPACITY_CHANGE_THRESHOLD = 0.1
STALE_SYNC_AGE = timedelta(hours=24)
RETIREMENT_GRACE_PERIOD = timedelta(hours=72)


def merge_string_maps(existing: Optional[Dict[str, str]], new: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Return a fresh map of existing entries overridden by new ones."""
    merged = dict(existing or {})
    merged.update(new or {})
    return merged


def _relative_change(old: int, new: int) -> float:
    return abs(old - new) / old


def has_significant_capacity_change(existing: Zone, desired: Zone) -> bool:
    pairs = (
        (existing.cpu_capacity, desired.cpu_capacity),
        (existing.memory_capacity, desired.memory_capacity),
        (existing.storage_capacity, desired.storage_capacity),
    )
    for old, new in pairs:
        if old > 0 and _relative_change(old, new) > CAPACITY_CHANGE_THRESHOLD:
            return True
    return False


def _age(now: datetime, then: datetime) -> timedelta:
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)
    return now - then


def index_by_cluster(zones: List[Zone]) -> Dict[str, Zone]:
    """Index zones by cluster name; on duplicates the last zone wins."""
    index: Dict[str, Zone] = {}
    for zone in zones:
        if zone.cluster_name in index:
            logger.warning(f"Duplicate zone for cluster {zone.cluster_name}: "
                           f"{index[zone.cluster_name].id} replaced by {zone.id}")
        index[zone.cluster_name] = zone
    return index


class ZoneReconciler:
    def __init__(self, store: ZoneStore, sync_config: SyncConfig, clock: Optional[Clock] = None):
        self.store = store
        self.config = sync_config
        self.clock = clock or utc_now

    def reconcile(self, desired: List[Zone], existing: List[Zone]) -> ReconcileResult:
        """Apply create/update/retire actions so the store matches ``desired``.

        Per-zone store failures are logged and counted in ``failures``;
        they never abort the remaining work.
        """
        result = ReconcileResult()

        desired_map = index_by_cluster(desired)
        existing_map = index_by_cluster([zone for zone in existing if zone.is_managed()])

        for cluster_name, desired_zone in desired_map.items():
            existing_zone = existing_map.get(cluster_name)
            if existing_zone is None:
                self._create(cluster_name, desired_zone, result)
            else:
                self._update(cluster_name, existing_zone, desired_zone, result)

        for cluster_name, existing_zone in existing_map.items():
            if cluster_name not in desired_map:
                self._retire(cluster_name, existing_zone, result)

        return result

    def should_update(self, existing: Zone, desired: Zone) -> bool:
        if existing.status != desired.status:
            return True
        if existing.api_url != desired.api_url:
            return True
        if has_significant_capacity_change(existing, desired):
            return True
        return _age(self.clock(), existing.last_sync) > STALE_SYNC_AGE

    def should_delete(self, zone: Zone) -> bool:
        """Whether an undiscovered, workload-free zone has outlived its grace period."""
        return (zone.status == ZoneStatus.UNAVAILABLE
                and _age(self.clock(), zone.updated_at) > RETIREMENT_GRACE_PERIOD)

    def build_update(self, existing: Zone, desired: Zone) -> Zone:
        now = self.clock()
        zone = desired.model_copy(deep=True)
        zone.id = existing.id
        zone.created_at = existing.created_at
        zone.updated_at = now
        zone.last_sync = now
        zone.labels = merge_string_maps(existing.labels, desired.labels)
        zone.annotations = merge_string_maps(existing.annotations, desired.annotations)

        pct = self.config.default_quota_percentage
        if pct > 0:
            zone.cpu_quota = calculate_quota(desired.cpu_capacity, pct)
            zone.memory_quota = calculate_quota(desired.memory_capacity, pct)
            zone.storage_quota = calculate_quota(desired.storage_capacity, pct)
        else:
            zone.cpu_quota = existing.cpu_quota
            zone.memory_quota = existing.memory_quota
            zone.storage_quota = existing.storage_quota
        return zone

    def _create(self, cluster_name: str, desired: Zone, result: ReconcileResult):
        if not self.config.auto_create_zones:
            logger.debug(f"Skipping zone creation for cluster {cluster_name} (auto-create disabled)")
            return
        try:
            self.store.create_zone(desired)
        except Exception as e:
            logger.error(f"Failed to create zone for cluster {cluster_name}: {e}")
            result.failures += 1
            return
        result.zones_created += 1
        result.created_ids.append(desired.id)
        logger.debug(f"Created zone: {desired.name} (cluster: {cluster_name})")

    def _update(self, cluster_name: str, existing: Zone, desired: Zone, result: ReconcileResult):
        if not self.should_update(existing, desired):
            result.zones_unchanged += 1
            return
        zone = self.build_update(existing, desired)
        try:
            self.store.update_zone(zone)
        except Exception as e:
            logger.error(f"Failed to update zone {existing.id}: {e}")
            result.failures += 1
            return
        result.zones_updated += 1
        result.updated_ids.append(zone.id)
        logger.debug(f"Updated zone: {zone.name} (cluster: {cluster_name})")

    def _retire(self, cluster_name: str, zone: Zone, result: ReconcileResult):
        try:
            workloads = self.store.count_workloads_in_zone(zone.id)
        except Exception as e:
            logger.error(f"Failed to count workloads in zone {zone.id}, preserving it: {e}")
            result.failures += 1
            return

        if workloads > 0:
            logger.info(f"Preserving zone {zone.name}: cluster {cluster_name} is gone "
                        f"but {workloads} workloads are deployed")
            result.zones_preserved += 1
            return

        if self.should_delete(zone):
            try:
                self.store.delete_zone(zone.id)
            except Exception as e:
                logger.error(f"Failed to delete zone {zone.id}: {e}")
                result.failures += 1
                return
            result.zones_deleted += 1
            result.deleted_ids.append(zone.id)
            logger.info(f"Deleted zone: {zone.name} (cluster: {cluster_name})")
            return

        if zone.status == ZoneStatus.UNAVAILABLE:
            result.zones_unchanged += 1
            return

        retired = zone.model_copy(deep=True)
        retired.status = ZoneStatus.UNAVAILABLE
        retired.updated_at = self.clock()
        try:
            self.store.update_zone(retired)
        except Exception as e:
            logger.error(f"Failed to mark zone {zone.id} as unavailable: {e}")
            result.failures += 1
            return
        result.zones_updated += 1
        result.updated_ids.append(zone.id)
        logger.info(f"Marked zone as unavailable: {zone.name} (cluster: {cluster_name})")
