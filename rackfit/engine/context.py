"""Per-call view of a configuration with its installed specs resolved."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

from rackfit.models.components import (
    CaddySpec,
    ChassisSpec,
    ComponentRef,
    ComponentSpec,
    ComponentType,
    CPUSpec,
    MotherboardSpec,
    PCIeCardSpec,
    RAMSpec,
    StorageSpec,
)
from rackfit.models.config import ConfigurationSnapshot
from rackfit.settings import EngineSettings, get_settings
from rackfit.specs.lookup import SpecificationLookup

logger = logging.getLogger(__name__)

S = TypeVar("S")


@dataclass(frozen=True)
class Installed(Generic[S]):
    """An installed component together with its normalized spec."""

    ref: ComponentRef
    spec: S

    @property
    def uuid(self) -> str:
        return self.ref.uuid


class ValidationContext:
    """Snapshot plus spec lookup for one validation call.

    Specs of installed components are fetched lazily and memoized for the
    lifetime of this object only. Installed components whose spec cannot
    be found are skipped with a warning; they cannot be checked against.
    """

    def __init__(
        self,
        snapshot: ConfigurationSnapshot,
        lookup: SpecificationLookup,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self.snapshot = snapshot
        self.lookup = lookup
        self.settings = settings or get_settings()
        self._resolved: Dict[Tuple[ComponentType, str], Optional[ComponentSpec]] = {}
        self.missing: List[ComponentRef] = []

    def spec_of(self, ref: ComponentRef) -> Optional[ComponentSpec]:
        key = (ref.type, ref.uuid)
        if key not in self._resolved:
            spec = self.lookup.get_spec(ref.type, ref.uuid)
            if spec is None:
                logger.warning(
                    "Installed %s %s in configuration %s has no specification; skipping",
                    ref.type.value, ref.uuid, self.snapshot.config_id,
                )
                self.missing.append(ref)
            self._resolved[key] = spec
        return self._resolved[key]

    def _installed(self, component_type: ComponentType) -> List[Installed]:
        installed = []
        for ref in self.snapshot.refs_of(component_type):
            spec = self.spec_of(ref)
            if spec is not None:
                installed.append(Installed(ref, spec))
        return installed

    # ── Typed accessors ──

    def motherboard(self) -> Optional[Installed[MotherboardSpec]]:
        found = self._installed(ComponentType.MOTHERBOARD)
        return found[0] if found else None

    def chassis(self) -> Optional[Installed[ChassisSpec]]:
        found = self._installed(ComponentType.CHASSIS)
        return found[0] if found else None

    def cpus(self) -> List[Installed[CPUSpec]]:
        return self._installed(ComponentType.CPU)

    def rams(self) -> List[Installed[RAMSpec]]:
        return self._installed(ComponentType.RAM)

    def storages(self) -> List[Installed[StorageSpec]]:
        return self._installed(ComponentType.STORAGE)

    def caddies(self) -> List[Installed[CaddySpec]]:
        return self._installed(ComponentType.CADDY)

    def pcie_devices(self) -> List[Installed[PCIeCardSpec]]:
        return [
            *self._installed(ComponentType.NIC),
            *self._installed(ComponentType.PCIE_CARD),
            *self._installed(ComponentType.HBA_CARD),
        ]

    def cpu_lanes(self) -> Optional[int]:
        """Total CPU lanes of installed CPUs, None if no CPU declares any."""
        lanes = [c.spec.pcie_lanes for c in self.cpus() if c.spec.pcie_lanes is not None]
        return sum(lanes) if lanes else None
