"""Findings, verdicts and storage connection results returned by the engine."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class VerdictStatus(str, Enum):
    ALLOWED = "allowed"
    ALLOWED_WITH_WARNINGS = "allowed_with_warnings"
    BLOCKED = "blocked"


class ConnectionPathType(str, Enum):
    """Physical attachment routes for a storage device."""

    CHASSIS_BAY = "chassis_bay"
    MOTHERBOARD_DIRECT = "motherboard_direct"
    HBA_CARD = "hba_card"
    PCIE_ADAPTER = "pcie_adapter"


# Lower value wins when several paths are available
PATH_PRIORITY: Dict[ConnectionPathType, int] = {
    ConnectionPathType.CHASSIS_BAY: 1,
    ConnectionPathType.MOTHERBOARD_DIRECT: 2,
    ConnectionPathType.HBA_CARD: 3,
    ConnectionPathType.PCIE_ADAPTER: 4,
}


# ──────────────────────────────────────────────
# Findings & Verdict
# ──────────────────────────────────────────────


class ValidationFinding(BaseModel):
    """One observation about a proposed addition.

    ``resolution`` holds the corrective action for errors and the
    recommendation for warnings.
    """

    type: str
    severity: Severity
    message: str
    resolution: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)


class ValidationVerdict(BaseModel):
    """Aggregated result of validating one component addition."""

    critical_errors: List[ValidationFinding] = Field(default_factory=list)
    warnings: List[ValidationFinding] = Field(default_factory=list)
    info_messages: List[ValidationFinding] = Field(default_factory=list)
    # Slot chosen for a PCIe-class addition, for the caller to persist
    assigned_slot: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> VerdictStatus:
        if self.critical_errors:
            return VerdictStatus.BLOCKED
        if self.warnings:
            return VerdictStatus.ALLOWED_WITH_WARNINGS
        return VerdictStatus.ALLOWED

    @property
    def is_blocked(self) -> bool:
        return self.status == VerdictStatus.BLOCKED

    def finding_types(self) -> List[str]:
        """Types of every finding across all three buckets, in order."""
        return [
            f.type
            for f in (*self.critical_errors, *self.warnings, *self.info_messages)
        ]

    def find(self, finding_type: str) -> Optional[ValidationFinding]:
        for finding in (*self.critical_errors, *self.warnings, *self.info_messages):
            if finding.type == finding_type:
                return finding
        return None


# ──────────────────────────────────────────────
# Storage connection results
# ──────────────────────────────────────────────


class ConnectionPath(BaseModel):
    type: ConnectionPathType
    priority: int
    description: str
    details: Dict[str, Any] = Field(default_factory=dict)


class Recommendation(BaseModel):
    """A component the operator could add later to give storage a home."""

    priority: int
    component: str
    reason: str
    example: Optional[str] = None


class StorageResolution(BaseModel):
    connection_paths: List[ConnectionPath] = Field(default_factory=list)
    primary_path: Optional[ConnectionPath] = None
    errors: List[ValidationFinding] = Field(default_factory=list)
    warnings: List[ValidationFinding] = Field(default_factory=list)
    info: List[ValidationFinding] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)

    @property
    def connected(self) -> bool:
        return self.primary_path is not None
