"""Shared enums, component references and normalized specification models."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from rackfit.specs.extraction import (
    bay_form_factor,
    extract_protocol,
    is_m2,
    is_u2,
    normalize_form_factor,
    slot_lanes,
)


# ──────────────────────────────────────────────
# Enums (shared vocabulary)
# ──────────────────────────────────────────────


class ComponentType(str, Enum):
    """Server component categories tracked in a configuration."""

    CPU = "cpu"
    MOTHERBOARD = "motherboard"
    RAM = "ram"
    STORAGE = "storage"
    CHASSIS = "chassis"
    NIC = "nic"
    PCIE_CARD = "pciecard"
    CADDY = "caddy"
    HBA_CARD = "hbacard"


SINGLE_INSTANCE_TYPES = frozenset({ComponentType.MOTHERBOARD, ComponentType.CHASSIS})

# Components that occupy an expansion (PCIe or riser) slot
PCIE_DEVICE_TYPES = frozenset(
    {ComponentType.NIC, ComponentType.PCIE_CARD, ComponentType.HBA_CARD}
)


class StorageProtocol(str, Enum):
    SATA = "sata"
    SAS = "sas"
    NVME = "nvme"
    UNKNOWN = "unknown"


# Card subtypes with special handling
HBA_SUBTYPE = "HBA Card"
NVME_ADAPTER_SUBTYPE = "NVMe Adaptor"
RISER_SUBTYPE = "Riser Card"


# ──────────────────────────────────────────────
# Component references (snapshot rows)
# ──────────────────────────────────────────────


class ComponentRef(BaseModel):
    """One installed or candidate component in a configuration."""

    type: ComponentType
    uuid: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)
    slot_position: Optional[str] = None


# ──────────────────────────────────────────────
# Normalized specifications
# ──────────────────────────────────────────────


class CPUSpec(BaseModel):
    component_type: Literal["cpu"] = "cpu"
    uuid: str
    model: Optional[str] = None
    socket: Optional[str] = None
    # "notes" marks a socket scraped from free text rather than a spec field
    socket_source: Literal["spec", "notes"] = "spec"
    memory_types: List[str] = Field(default_factory=list)
    max_memory_frequency: Optional[int] = None  # MHz
    max_memory_capacity: Optional[int] = None  # GB
    pcie_lanes: Optional[int] = None
    pcie_version: Optional[float] = None
    ecc_required: bool = False


class SlotGroup(BaseModel):
    """A run of identical expansion slots, e.g. 3 × PCIe 4.0 x16."""

    size: Literal["x1", "x4", "x8", "x16"]
    count: int = Field(ge=0)
    version: Optional[float] = None
    bifurcation: bool = False


class M2SlotGroup(BaseModel):
    count: int = Field(ge=0)
    form_factors: List[str] = Field(default_factory=list)
    pcie_generation: Optional[float] = None


class StoragePorts(BaseModel):
    sata: int = 0
    sas: int = 0
    u2: int = 0
    m2: List[M2SlotGroup] = Field(default_factory=list)

    @property
    def m2_total(self) -> int:
        return sum(group.count for group in self.m2)


class MotherboardSpec(BaseModel):
    component_type: Literal["motherboard"] = "motherboard"
    uuid: str
    model: Optional[str] = None
    socket: Optional[str] = None
    socket_source: Literal["spec", "notes"] = "spec"
    max_cpus: int = Field(default=1, ge=1)
    memory_types: List[str] = Field(default_factory=list)
    memory_slots: Optional[int] = None
    max_memory_capacity: Optional[int] = None  # GB
    max_memory_frequency: Optional[int] = None  # MHz
    memory_form_factor: Optional[str] = None
    per_slot_capacity: Optional[int] = None  # GB
    form_factor: Optional[str] = None
    pcie_slots: List[SlotGroup] = Field(default_factory=list)
    riser_slots: List[SlotGroup] = Field(default_factory=list)
    pcie_version: Optional[float] = None
    chipset_pcie_lanes: int = 0
    bifurcation_support: bool = False
    storage_ports: StoragePorts = Field(default_factory=StoragePorts)

    @property
    def total_pcie_slots(self) -> int:
        return sum(group.count for group in self.pcie_slots)

    @property
    def total_riser_slots(self) -> int:
        return sum(group.count for group in self.riser_slots)


class RAMSpec(BaseModel):
    component_type: Literal["ram"] = "ram"
    uuid: str
    model: Optional[str] = None
    memory_type: Optional[str] = None
    form_factor: Optional[str] = None
    capacity: Optional[int] = None  # GB per module
    frequency: Optional[int] = None  # MHz
    ecc: bool = False


class StorageSpec(BaseModel):
    component_type: Literal["storage"] = "storage"
    uuid: str
    model: Optional[str] = None
    interface: Optional[str] = None
    form_factor: Optional[str] = None
    subtype: Optional[str] = None
    pcie_lanes: Optional[int] = None
    pcie_version: Optional[float] = None

    @property
    def protocol(self) -> StorageProtocol:
        return StorageProtocol(extract_protocol(self.interface))

    @property
    def normalized_form_factor(self) -> str:
        return normalize_form_factor(self.form_factor)

    @property
    def is_m2(self) -> bool:
        return is_m2(self.form_factor) or is_m2(self.subtype)

    @property
    def is_u2(self) -> bool:
        return is_u2(self.form_factor)

    @property
    def bay_size(self) -> Optional[str]:
        """Bay size this drive mounts in, None for M.2 and add-in cards."""
        if self.is_m2:
            return None
        return bay_form_factor(self.form_factor)


class BayGroup(BaseModel):
    bay_type: str  # normalized, e.g. "3.5-inch"
    count: int = Field(ge=0)
    hot_swap: bool = False


class DriveBays(BaseModel):
    # None when the record does not state a bay count
    total: Optional[int] = None
    bay_configuration: List[BayGroup] = Field(default_factory=list)


class Backplane(BaseModel):
    supports_sata: bool = False
    supports_sas: bool = False
    supports_nvme: bool = False
    interface: Optional[str] = None

    def supports(self, protocol: StorageProtocol) -> bool:
        return {
            StorageProtocol.SATA: self.supports_sata,
            StorageProtocol.SAS: self.supports_sas,
            StorageProtocol.NVME: self.supports_nvme,
        }.get(protocol, False)


class ChassisSpec(BaseModel):
    component_type: Literal["chassis"] = "chassis"
    uuid: str
    model: Optional[str] = None
    drive_bays: DriveBays = Field(default_factory=DriveBays)
    backplane: Backplane = Field(default_factory=Backplane)
    form_factor_support: List[str] = Field(default_factory=list)


class PCIeCardSpec(BaseModel):
    """NICs, generic PCIe cards and HBA cards share one shape."""

    component_type: Literal["nic", "pciecard", "hbacard"] = "pciecard"
    uuid: str
    model: Optional[str] = None
    subtype: Optional[str] = None
    slot_size: Literal["x1", "x4", "x8", "x16"] = "x16"
    pcie_version: Optional[float] = None
    interface: Optional[str] = None
    # HBA cards
    max_devices: Optional[int] = None
    internal_ports: Optional[int] = None
    # NVMe adapters
    m2_slots: int = 0
    m2_form_factors: List[str] = Field(default_factory=list)

    @property
    def lanes(self) -> int:
        return slot_lanes(self.slot_size)

    @property
    def is_riser(self) -> bool:
        return (self.subtype or "").strip().lower() == RISER_SUBTYPE.lower()

    @property
    def is_hba(self) -> bool:
        return (
            self.component_type == ComponentType.HBA_CARD.value
            or (self.subtype or "").strip().lower() == HBA_SUBTYPE.lower()
        )

    @property
    def is_nvme_adapter(self) -> bool:
        return (self.subtype or "").strip().lower() == NVME_ADAPTER_SUBTYPE.lower()

    def supports_protocol(self, protocol: StorageProtocol) -> bool:
        return protocol.value in (self.interface or "").lower()


class CaddySpec(BaseModel):
    component_type: Literal["caddy"] = "caddy"
    uuid: str
    model: Optional[str] = None
    form_factor: str  # drive size it holds, normalized
    bay_type: Optional[str] = None  # bay size it mounts in


ComponentSpec = Annotated[
    Union[
        CPUSpec,
        MotherboardSpec,
        RAMSpec,
        StorageSpec,
        ChassisSpec,
        PCIeCardSpec,
        CaddySpec,
    ],
    Field(discriminator="component_type"),
]
