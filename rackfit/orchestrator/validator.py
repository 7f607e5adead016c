"""Validation orchestrator: the single entry point of the engine.

Flow of one call:
  1. Resolve the component type
  2. Load the configuration snapshot once
  3. Load the candidate's specification
  4. Dispatch to the per-type validator
  5. Fold its findings into a ValidationVerdict

Nothing raised below this module escapes it: unexpected failures come
back as a blocked verdict with a ``validation_system_error`` finding.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Union

from rackfit.engine.caddy import validate_caddy
from rackfit.engine.chassis import validate_chassis
from rackfit.engine.context import ValidationContext
from rackfit.engine.cpu import validate_cpu
from rackfit.engine.findings import FindingCollector
from rackfit.engine.motherboard import validate_motherboard
from rackfit.engine.pcie import validate_pcie_device
from rackfit.engine.ram import validate_ram
from rackfit.engine.slots import SlotTracker, validate_slot_map
from rackfit.engine.storage import validate_storage
from rackfit.errors import SnapshotError
from rackfit.models.components import PCIE_DEVICE_TYPES, ComponentType
from rackfit.models.config import ConfigurationSnapshot
from rackfit.models.verdict import ValidationVerdict
from rackfit.settings import EngineSettings, get_settings
from rackfit.specs.lookup import SnapshotProvider, SpecificationLookup

logger = logging.getLogger(__name__)

Validator = Callable[[ValidationContext, object], FindingCollector]

VALIDATORS: Dict[ComponentType, Validator] = {
    ComponentType.CPU: validate_cpu,
    ComponentType.MOTHERBOARD: validate_motherboard,
    ComponentType.RAM: validate_ram,
    ComponentType.STORAGE: validate_storage,
    ComponentType.CHASSIS: validate_chassis,
    ComponentType.NIC: validate_pcie_device,
    ComponentType.PCIE_CARD: validate_pcie_device,
    ComponentType.HBA_CARD: validate_pcie_device,
    ComponentType.CADDY: validate_caddy,
}


def _blocked(finding_type: str, message: str, resolution: str = "", **details) -> ValidationVerdict:
    findings = FindingCollector()
    findings.block(finding_type, message, resolution, **details)
    return findings.verdict()


def _resolve_type(component_type: Union[str, ComponentType]) -> Optional[ComponentType]:
    if isinstance(component_type, ComponentType):
        return component_type
    try:
        return ComponentType(str(component_type).strip().lower())
    except ValueError:
        return None


class CompatibilityOrchestrator:
    """Validates component additions against one configuration at a time.

    Holds only its collaborators; every call builds a fresh
    ``ValidationContext``, so instances are safe to share between calls.
    """

    def __init__(
        self,
        spec_lookup: SpecificationLookup,
        snapshot_provider: SnapshotProvider,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self.spec_lookup = spec_lookup
        self.snapshot_provider = snapshot_provider
        self.settings = settings or get_settings()

    def validate_addition(
        self,
        config_id: str,
        component_type: Union[str, ComponentType],
        component_uuid: str,
    ) -> ValidationVerdict:
        """Decide whether ``component_uuid`` may be added to ``config_id``."""
        resolved = _resolve_type(component_type)
        if resolved is None:
            logger.info("Rejected unknown component type %r", component_type)
            return _blocked(
                "invalid_component_type",
                f"Invalid component type: {component_type}",
                f"Use one of: {', '.join(t.value for t in ComponentType)}",
                component_type=str(component_type),
            )

        try:
            verdict = self._validate(config_id, resolved, component_uuid)
        except Exception as e:
            logger.exception(
                "Validation of %s %s for configuration %s failed",
                resolved.value, component_uuid, config_id,
            )
            return _blocked(
                "validation_system_error",
                f"Validation system error: {e}",
                "Retry the request or contact support if the problem persists",
                component_type=resolved.value,
                component_uuid=component_uuid,
                error=type(e).__name__,
            )

        logger.info(
            "Validated %s %s for configuration %s: %s (%d errors, %d warnings)",
            resolved.value, component_uuid, config_id, verdict.status.value,
            len(verdict.critical_errors), len(verdict.warnings),
        )
        return verdict

    def _snapshot(self, config_id: str) -> Optional[ConfigurationSnapshot]:
        snapshot = self.snapshot_provider.get_snapshot(config_id)
        if snapshot is not None and snapshot.config_id != config_id:
            raise SnapshotError(
                f"Snapshot provider returned configuration {snapshot.config_id} for {config_id}",
                {"requested": config_id, "returned": snapshot.config_id},
            )
        return snapshot

    def _validate(
        self,
        config_id: str,
        component_type: ComponentType,
        component_uuid: str,
    ) -> ValidationVerdict:
        snapshot = self._snapshot(config_id)
        if snapshot is None:
            return _blocked(
                "configuration_not_found",
                f"Configuration {config_id} not found",
                "Check the configuration id",
                config_id=config_id,
            )

        spec = self.spec_lookup.get_spec(component_type, component_uuid)
        if spec is None:
            return _blocked(
                f"{component_type.value}_not_found_in_spec",
                f"{component_type.value} {component_uuid} not found in specification database",
                "Choose a component with a published specification",
                component_uuid=component_uuid,
            )

        ctx = ValidationContext(snapshot, self.spec_lookup, self.settings)
        logger.info(
            "Dispatching %s %s against configuration %s",
            component_type.value, component_uuid, config_id,
        )
        findings = VALIDATORS[component_type](ctx, spec)
        return findings.verdict()

    def validate_expansion_slots(self, config_id: str) -> ValidationVerdict:
        """Audit every recorded PCIe and riser slot assignment of a configuration."""
        try:
            snapshot = self._snapshot(config_id)
            if snapshot is None:
                return _blocked(
                    "configuration_not_found",
                    f"Configuration {config_id} not found",
                    "Check the configuration id",
                    config_id=config_id,
                )

            ctx = ValidationContext(snapshot, self.spec_lookup, self.settings)
            mobo = ctx.motherboard()
            if mobo is None:
                findings = FindingCollector()
                findings.note(
                    "no_motherboard",
                    "No motherboard yet; slot assignments are checked once one is added",
                )
            else:
                devices = ctx.pcie_devices()
                findings = validate_slot_map(
                    SlotTracker.for_pcie(mobo.spec, snapshot),
                    SlotTracker.for_riser(mobo.spec, snapshot),
                    devices,
                    unresolved=[r for r in ctx.missing if r.type in PCIE_DEVICE_TYPES],
                )
        except Exception as e:
            logger.exception("Slot audit of configuration %s failed", config_id)
            return _blocked(
                "validation_system_error",
                f"Validation system error: {e}",
                "Retry the request or contact support if the problem persists",
                config_id=config_id,
                error=type(e).__name__,
            )

        verdict = findings.verdict()
        logger.info("Slot audit of configuration %s: %s", config_id, verdict.status.value)
        return verdict


def validate_addition(
    config_id: str,
    component_type: Union[str, ComponentType],
    component_uuid: str,
    spec_lookup: SpecificationLookup,
    snapshot_provider: SnapshotProvider,
    settings: Optional[EngineSettings] = None,
) -> ValidationVerdict:
    """Functional shorthand for a one-off ``CompatibilityOrchestrator`` call."""
    orchestrator = CompatibilityOrchestrator(spec_lookup, snapshot_provider, settings)
    return orchestrator.validate_addition(config_id, component_type, component_uuid)
