"""Accumulates findings into the three verdict buckets."""

from __future__ import annotations

from typing import Any, List, Optional

from rackfit.models.verdict import Severity, ValidationFinding, ValidationVerdict
from rackfit.specs.extraction import percent_loss


class FindingCollector:
    """Mutable bucket set filled by one validator during one call."""

    def __init__(self) -> None:
        self.critical_errors: List[ValidationFinding] = []
        self.warnings: List[ValidationFinding] = []
        self.info_messages: List[ValidationFinding] = []
        self.assigned_slot: Optional[str] = None

    def block(
        self,
        finding_type: str,
        message: str,
        resolution: str = "",
        severity: Severity = Severity.CRITICAL,
        **details: Any,
    ) -> ValidationFinding:
        finding = ValidationFinding(
            type=finding_type, severity=severity, message=message,
            resolution=resolution, details=details,
        )
        self.critical_errors.append(finding)
        return finding

    def warn(
        self,
        finding_type: str,
        message: str,
        recommendation: str = "",
        severity: Severity = Severity.MEDIUM,
        **details: Any,
    ) -> ValidationFinding:
        finding = ValidationFinding(
            type=finding_type, severity=severity, message=message,
            resolution=recommendation, details=details,
        )
        self.warnings.append(finding)
        return finding

    def note(self, finding_type: str, message: str, **details: Any) -> ValidationFinding:
        finding = ValidationFinding(
            type=finding_type, severity=Severity.LOW, message=message, details=details,
        )
        self.info_messages.append(finding)
        return finding

    @property
    def blocked(self) -> bool:
        return bool(self.critical_errors)

    def verdict(self) -> ValidationVerdict:
        return ValidationVerdict(
            critical_errors=list(self.critical_errors),
            warnings=list(self.warnings),
            info_messages=list(self.info_messages),
            assigned_slot=self.assigned_slot,
        )


def performance_impact(limit: float, rated: float, what: str = "performance") -> dict:
    """Detail fields describing a downclock from ``rated`` to ``limit``."""
    loss = percent_loss(limit, rated)
    return {
        "performance_loss_pct": loss,
        "performance_impact": f"~{loss}% {what} reduction",
    }
