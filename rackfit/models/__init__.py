"""Pydantic models for component specs, snapshots and validation verdicts."""

from rackfit.models.components import (
    HBA_SUBTYPE,
    NVME_ADAPTER_SUBTYPE,
    PCIE_DEVICE_TYPES,
    RISER_SUBTYPE,
    SINGLE_INSTANCE_TYPES,
    Backplane,
    BayGroup,
    CaddySpec,
    ChassisSpec,
    ComponentRef,
    ComponentSpec,
    ComponentType,
    CPUSpec,
    DriveBays,
    M2SlotGroup,
    MotherboardSpec,
    PCIeCardSpec,
    RAMSpec,
    SlotGroup,
    StoragePorts,
    StorageProtocol,
    StorageSpec,
)
from rackfit.models.config import ConfigurationSnapshot
from rackfit.models.verdict import (
    PATH_PRIORITY,
    ConnectionPath,
    ConnectionPathType,
    Recommendation,
    Severity,
    StorageResolution,
    ValidationFinding,
    ValidationVerdict,
    VerdictStatus,
)

__all__ = [
    # Components & enums
    "HBA_SUBTYPE",
    "NVME_ADAPTER_SUBTYPE",
    "PCIE_DEVICE_TYPES",
    "RISER_SUBTYPE",
    "SINGLE_INSTANCE_TYPES",
    "Backplane",
    "BayGroup",
    "CaddySpec",
    "ChassisSpec",
    "ComponentRef",
    "ComponentSpec",
    "ComponentType",
    "CPUSpec",
    "DriveBays",
    "M2SlotGroup",
    "MotherboardSpec",
    "PCIeCardSpec",
    "RAMSpec",
    "SlotGroup",
    "StoragePorts",
    "StorageProtocol",
    "StorageSpec",
    # Configuration
    "ConfigurationSnapshot",
    # Verdicts
    "PATH_PRIORITY",
    "ConnectionPath",
    "ConnectionPathType",
    "Recommendation",
    "Severity",
    "StorageResolution",
    "ValidationFinding",
    "ValidationVerdict",
    "VerdictStatus",
]
