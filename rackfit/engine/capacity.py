"""Memory-slot/capacity and drive-bay trackers."""

from __future__ import annotations

from typing import List, Optional, Tuple

from rackfit.engine.context import Installed
from rackfit.models.components import ChassisSpec, RAMSpec, StorageSpec


class MemoryTracker:
    """Memory slots and installed capacity against a parent's limits.

    Each installed RAM entry occupies one physical slot. Capacity counts
    ``capacity × quantity`` per entry.
    """

    def __init__(self, total_slots: Optional[int], modules: List[Installed[RAMSpec]]) -> None:
        self.total_slots = total_slots
        self.modules = modules

    @property
    def used_slots(self) -> int:
        return len(self.modules)

    @property
    def available_slots(self) -> Optional[int]:
        if self.total_slots is None:
            return None
        return max(self.total_slots - self.used_slots, 0)

    def slot_deficit(self, adding: int = 1) -> int:
        """Slots missing if ``adding`` more modules were installed."""
        if self.total_slots is None:
            return 0
        return max(self.used_slots + adding - self.total_slots, 0)

    @property
    def installed_capacity(self) -> int:
        return sum((m.spec.capacity or 0) * m.ref.quantity for m in self.modules)

    def capacity_if_added(self, capacity: Optional[int], quantity: int = 1) -> int:
        return self.installed_capacity + (capacity or 0) * quantity

    @property
    def installed_types(self) -> List[str]:
        return sorted({m.spec.memory_type for m in self.modules if m.spec.memory_type})

    @property
    def max_frequency(self) -> Optional[int]:
        known = [m.spec.frequency for m in self.modules if m.spec.frequency]
        return max(known) if known else None


class BayTracker:
    """Drive bays of a chassis against the installed storage.

    Every storage entry in the configuration counts against the bay total.
    Only drives with a bay size are checked for fit (``mounted``).
    A chassis that does not declare its bay count has no known limit.
    """

    def __init__(self, chassis: ChassisSpec, storage: List[Installed[StorageSpec]]) -> None:
        self.chassis = chassis
        self.storage = list(storage)
        self.mounted = [s for s in self.storage if s.spec.bay_size is not None]

    @property
    def total(self) -> Optional[int]:
        return self.chassis.drive_bays.total

    @property
    def used(self) -> int:
        return len(self.storage)

    @property
    def available(self) -> Optional[int]:
        if self.total is None:
            return None
        return max(self.total - self.used, 0)

    def deficit(self, adding: int = 0) -> int:
        if self.total is None:
            return 0
        return max(self.used + adding - self.total, 0)

    @property
    def bay_types(self) -> List[str]:
        return [g.bay_type for g in self.chassis.drive_bays.bay_configuration if g.count > 0]

    def fit(self, bay_size: Optional[str]) -> Tuple[bool, bool]:
        """Return (fits, needs_caddy) for a drive of the given bay size.

        A chassis that declares no bay layout is assumed to fit any size.
        """
        if bay_size is None:
            return False, False
        types = self.bay_types
        if not types or bay_size in types:
            return True, False
        if bay_size == "2.5-inch" and "3.5-inch" in types:
            return True, True
        return False, False
