import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Set

from models import Zone, ZoneNotFoundError, ZoneAlreadyExistsError

logger = logging.getLogger(__name__)


class ZoneStore(ABC):
    """Persistence for zone records plus the workload counts that veto deletion."""

    @abstractmethod
    def list_zones(self) -> List[Zone]:
        ...

    @abstractmethod
    def create_zone(self, zone: Zone):
        ...

    @abstractmethod
    def update_zone(self, zone: Zone):
        ...

    @abstractmethod
    def delete_zone(self, zone_id: str):
        ...

    @abstractmethod
    def count_workloads_in_zone(self, zone_id: str) -> int:
        ...


class InMemoryZoneStore(ZoneStore):
    """Thread-safe store keeping zones in a dict; reads and writes copy records."""

    def __init__(self):
        self._lock = threading.Lock()
        self._zones: Dict[str, Zone] = {}
        self._workloads: Dict[str, Set[str]] = {}

    def list_zones(self) -> List[Zone]:
        with self._lock:
            return [zone.model_copy(deep=True) for zone in self._zones.values()]

    def get_zone(self, zone_id: str) -> Zone:
        with self._lock:
            if zone_id not in self._zones:
                raise ZoneNotFoundError(f"zone {zone_id} not found")
            return self._zones[zone_id].model_copy(deep=True)

    def create_zone(self, zone: Zone):
        with self._lock:
            if zone.id in self._zones:
                raise ZoneAlreadyExistsError(f"zone {zone.id} already exists")
            self._zones[zone.id] = zone.model_copy(deep=True)
        logger.debug(f"Stored zone {zone.id}")

    def update_zone(self, zone: Zone):
        with self._lock:
            if zone.id not in self._zones:
                raise ZoneNotFoundError(f"zone {zone.id} not found")
            self._zones[zone.id] = zone.model_copy(deep=True)

    def delete_zone(self, zone_id: str):
        with self._lock:
            if zone_id not in self._zones:
                raise ZoneNotFoundError(f"zone {zone_id} not found")
            del self._zones[zone_id]
            self._workloads.pop(zone_id, None)

    def count_workloads_in_zone(self, zone_id: str) -> int:
        with self._lock:
            return len(self._workloads.get(zone_id, ()))

    def attach_workload(self, zone_id: str, workload_id: str):
        with self._lock:
            if zone_id not in self._zones:
                raise ZoneNotFoundError(f"zone {zone_id} not found")
            self._workloads.setdefault(zone_id, set()).add(workload_id)

    def detach_workload(self, zone_id: str, workload_id: str):
        with self._lock:
            self._workloads.get(zone_id, set()).discard(workload_id)
