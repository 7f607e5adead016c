"""Chassis addition rules: bays, bay sizes, backplane protocols."""

from __future__ import annotations

import logging
from typing import List

from rackfit.engine.capacity import BayTracker
from rackfit.engine.context import Installed, ValidationContext
from rackfit.engine.findings import FindingCollector
from rackfit.engine.motherboard import form_factor_supported
from rackfit.models.components import CaddySpec, ChassisSpec, MotherboardSpec, StorageProtocol, StorageSpec
from rackfit.models.verdict import Severity

logger = logging.getLogger(__name__)


def caddy_for(storage: StorageSpec, caddies: List[Installed[CaddySpec]]) -> bool:
    """True if an installed caddy holds drives of this storage's bay size."""
    return any(c.spec.form_factor == storage.bay_size for c in caddies)


def check_storage(
    findings: FindingCollector,
    chassis: ChassisSpec,
    storage: List[Installed[StorageSpec]],
    caddies: List[Installed[CaddySpec]],
) -> None:
    """Installed storage fits the bay count, bay sizes and backplane protocols."""
    bays = BayTracker(chassis, storage)

    deficit = bays.deficit()
    if deficit:
        findings.block(
            "storage_count_exceeds_bays",
            f"{bays.used} drives installed but chassis has {bays.total} bays",
            f"Remove {deficit} drive(s) or choose a chassis with more bays",
            installed_drives=bays.used,
            total_bays=bays.total,
            deficit=deficit,
        )

    for drive in bays.mounted:
        spec = drive.spec
        fits, needs_caddy = bays.fit(spec.bay_size)
        if not fits:
            findings.block(
                "existing_storage_incompatible",
                f"{spec.model or drive.uuid} ({spec.bay_size}) does not fit chassis bays ({', '.join(bays.bay_types)})",
                "Remove the drive or choose a chassis with matching bays",
                storage_uuid=drive.uuid,
                storage_form_factor=spec.bay_size,
                bay_types=bays.bay_types,
            )
        elif needs_caddy and not caddy_for(spec, caddies):
            findings.block(
                "existing_storage_needs_caddy",
                f"{spec.model or drive.uuid} is {spec.bay_size} and needs a caddy for the chassis 3.5-inch bays",
                "Add a 2.5-inch to 3.5-inch caddy",
                storage_uuid=drive.uuid,
                caddy_type="2.5-inch to 3.5-inch",
            )

        protocol = spec.protocol
        if protocol is StorageProtocol.UNKNOWN or chassis.backplane.supports(protocol):
            continue
        if protocol is StorageProtocol.NVME:
            findings.warn(
                "existing_storage_needs_adapter",
                f"Chassis backplane has no NVMe support; {spec.model or drive.uuid} must connect through an adapter",
                "Add a U.2/NVMe to PCIe adapter or choose a chassis with an NVMe backplane",
                storage_uuid=drive.uuid,
            )
        else:
            findings.block(
                "existing_storage_interface_incompatible",
                f"Chassis backplane does not support {protocol.value.upper()} used by {spec.model or drive.uuid}",
                f"Choose a chassis with a {protocol.value.upper()} backplane",
                storage_uuid=drive.uuid,
                protocol=protocol.value,
                backplane=chassis.backplane.model_dump(),
            )


def check_motherboard_fit(findings: FindingCollector, chassis: ChassisSpec, mobo: Installed[MotherboardSpec]) -> None:
    """Installed motherboard form factor is listed by the chassis."""
    if not mobo.spec.form_factor or not chassis.form_factor_support:
        return
    if not form_factor_supported(mobo.spec.form_factor, chassis):
        findings.warn(
            "motherboard_form_factor_warning",
            (
                f"Installed motherboard form factor {mobo.spec.form_factor} is not listed by chassis "
                f"({', '.join(chassis.form_factor_support)})"
            ),
            "Verify physical fitment manually before ordering",
            severity=Severity.LOW,
            motherboard_uuid=mobo.uuid,
            motherboard_form_factor=mobo.spec.form_factor,
        )


def validate_chassis(ctx: ValidationContext, chassis: ChassisSpec) -> FindingCollector:
    findings = FindingCollector()

    existing = ctx.snapshot.chassis
    if existing is not None:
        findings.block(
            "chassis_already_exists",
            f"Configuration already has chassis {existing.uuid}",
            "Remove the installed chassis before adding another",
            existing_chassis_uuid=existing.uuid,
        )
        return findings

    check_storage(findings, chassis, ctx.storages(), ctx.caddies())

    mobo = ctx.motherboard()
    if mobo is not None:
        check_motherboard_fit(findings, chassis, mobo)

    findings.note(
        "chassis_specifications",
        f"Chassis {chassis.model or chassis.uuid}",
        total_bays=chassis.drive_bays.total,
        bay_types=[g.bay_type for g in chassis.drive_bays.bay_configuration],
        backplane=chassis.backplane.model_dump(),
        form_factor_support=chassis.form_factor_support,
    )
    logger.debug("Chassis %s: %d error(s)", chassis.uuid, len(findings.critical_errors))
    return findings
