"""Point-in-time view of the components installed in one configuration."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from rackfit.models.components import SINGLE_INSTANCE_TYPES, ComponentRef, ComponentType

logger = logging.getLogger(__name__)


class ConfigurationSnapshot(BaseModel):
    """Installed components of one configuration, grouped by type.

    Motherboard and chassis are single-instance; every other type is a
    list. The engine treats a snapshot as read-only.
    """

    config_id: str
    motherboard: Optional[ComponentRef] = None
    chassis: Optional[ComponentRef] = None
    cpu: List[ComponentRef] = Field(default_factory=list)
    ram: List[ComponentRef] = Field(default_factory=list)
    storage: List[ComponentRef] = Field(default_factory=list)
    nic: List[ComponentRef] = Field(default_factory=list)
    pciecard: List[ComponentRef] = Field(default_factory=list)
    hbacard: List[ComponentRef] = Field(default_factory=list)
    caddy: List[ComponentRef] = Field(default_factory=list)

    model_config = {"frozen": True}

    @classmethod
    def from_refs(cls, config_id: str, refs: Iterable[ComponentRef]) -> "ConfigurationSnapshot":
        """Group a flat list of component rows by type."""
        grouped: dict = {"config_id": config_id}
        for ref in refs:
            key = ref.type.value
            if ref.type in SINGLE_INSTANCE_TYPES:
                if key in grouped:
                    logger.warning(
                        "Configuration %s has more than one %s; keeping %s, ignoring %s",
                        config_id, key, grouped[key].uuid, ref.uuid,
                    )
                    continue
                grouped[key] = ref
            else:
                grouped.setdefault(key, []).append(ref)
        return cls(**grouped)

    def refs_of(self, component_type: ComponentType) -> List[ComponentRef]:
        """Installed references of one type (0 or 1 for single-instance types)."""
        value = getattr(self, component_type.value)
        if value is None:
            return []
        if isinstance(value, ComponentRef):
            return [value]
        return list(value)

    def pcie_devices(self) -> List[ComponentRef]:
        """Everything that sits in an expansion slot: NICs, PCIe and HBA cards."""
        return [*self.nic, *self.pciecard, *self.hbacard]

    def all_refs(self) -> List[ComponentRef]:
        refs: List[ComponentRef] = []
        for component_type in ComponentType:
            refs.extend(self.refs_of(component_type))
        return refs
