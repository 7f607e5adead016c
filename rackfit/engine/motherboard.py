"""Motherboard addition rules.

A motherboard is the parent of almost everything, so nearly every rule
here is a reverse check: installed CPUs, RAM, expansion cards and the
chassis are each re-validated against the incoming board.
"""

from __future__ import annotations

import logging
from typing import List

from rackfit.engine.capacity import MemoryTracker
from rackfit.engine.context import Installed, ValidationContext
from rackfit.engine.findings import FindingCollector, performance_impact
from rackfit.engine.slots import PCIE_PREFIX, SlotTracker, build_slot_pool
from rackfit.models.components import (
    ChassisSpec,
    CPUSpec,
    MotherboardSpec,
    PCIeCardSpec,
    RAMSpec,
)
from rackfit.models.verdict import Severity
from rackfit.specs.extraction import sockets_match

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Reverse: installed CPUs → Motherboard
# ──────────────────────────────────────────────


def check_cpus(findings: FindingCollector, mobo: MotherboardSpec, cpus: List[Installed[CPUSpec]]) -> None:
    """Installed CPUs match the board socket and fit its CPU count."""
    for cpu in cpus:
        if cpu.spec.socket and mobo.socket and not sockets_match(cpu.spec.socket, mobo.socket):
            findings.block(
                "cpu_socket_mismatch",
                f"Installed CPU {cpu.spec.model or cpu.uuid} ({cpu.spec.socket}) does not fit motherboard socket {mobo.socket}",
                f"Choose a motherboard with socket {cpu.spec.socket} or replace the CPU",
                cpu_uuid=cpu.uuid,
                cpu_socket=cpu.spec.socket,
                motherboard_socket=mobo.socket,
            )
        if cpu.spec.pcie_version and mobo.pcie_version and cpu.spec.pcie_version > mobo.pcie_version:
            findings.warn(
                "cpu_pcie_version_higher",
                f"CPU supports PCIe {cpu.spec.pcie_version}; motherboard limits devices to PCIe {mobo.pcie_version}",
                "Choose a motherboard with matching PCIe generation for full bandwidth",
                cpu_uuid=cpu.uuid,
                **performance_impact(mobo.pcie_version, cpu.spec.pcie_version, "bandwidth"),
            )

    installed = sum(c.ref.quantity for c in cpus)
    if installed > mobo.max_cpus:
        findings.block(
            "cpu_count_exceeded",
            f"{installed} CPUs installed but motherboard has {mobo.max_cpus} socket(s)",
            f"Remove {installed - mobo.max_cpus} CPU(s) or choose a board with more sockets",
            installed_cpus=installed,
            max_cpus=mobo.max_cpus,
            overflow=installed - mobo.max_cpus,
        )


# ──────────────────────────────────────────────
# Reverse: installed RAM → Motherboard
# ──────────────────────────────────────────────


def check_memory(
    findings: FindingCollector,
    mobo: MotherboardSpec,
    rams: List[Installed[RAMSpec]],
    cpus: List[Installed[CPUSpec]],
) -> None:
    """Installed RAM type, form factor, slots and capacity within the board limits."""
    if not rams:
        return
    memory = MemoryTracker(mobo.memory_slots, rams)

    if mobo.memory_types:
        unsupported = [t for t in memory.installed_types if t not in mobo.memory_types]
        if unsupported:
            findings.block(
                "ram_type_incompatible",
                f"Installed memory type(s) {', '.join(unsupported)} not supported by motherboard ({', '.join(mobo.memory_types)})",
                "Remove the incompatible RAM or choose a motherboard supporting it",
                installed_types=memory.installed_types,
                motherboard_types=mobo.memory_types,
            )

    for module in rams:
        if mobo.memory_form_factor and module.spec.form_factor and module.spec.form_factor != mobo.memory_form_factor:
            findings.block(
                "ram_form_factor_mismatch",
                f"RAM {module.uuid} is {module.spec.form_factor}; motherboard takes {mobo.memory_form_factor}",
                f"Replace with {mobo.memory_form_factor} modules",
                ram_uuid=module.uuid,
                ram_form_factor=module.spec.form_factor,
                motherboard_form_factor=mobo.memory_form_factor,
            )
        if mobo.per_slot_capacity and module.spec.capacity and module.spec.capacity > mobo.per_slot_capacity:
            findings.block(
                "ram_per_slot_capacity_exceeded",
                f"RAM {module.uuid} ({module.spec.capacity}GB) exceeds per-slot maximum {mobo.per_slot_capacity}GB",
                f"Use modules of {mobo.per_slot_capacity}GB or less",
                ram_uuid=module.uuid,
                module_capacity_gb=module.spec.capacity,
                motherboard_per_slot_max_gb=mobo.per_slot_capacity,
            )

    overflow = memory.slot_deficit(adding=0)
    if overflow:
        findings.block(
            "ram_slot_count_exceeded",
            f"{memory.used_slots} RAM modules installed but motherboard has {mobo.memory_slots} slots",
            f"Remove {overflow} module(s) or choose a motherboard with more slots",
            installed_modules=memory.used_slots,
            memory_slots=mobo.memory_slots,
            deficit=overflow,
        )

    if mobo.max_memory_capacity is not None and memory.installed_capacity > mobo.max_memory_capacity:
        excess = memory.installed_capacity - mobo.max_memory_capacity
        findings.block(
            "ram_total_capacity_exceeded",
            f"Installed RAM ({memory.installed_capacity}GB) exceeds motherboard maximum ({mobo.max_memory_capacity}GB)",
            f"Remove at least {excess}GB of RAM",
            installed_capacity_gb=memory.installed_capacity,
            max_capacity_gb=mobo.max_memory_capacity,
            excess_gb=excess,
        )

    highest = memory.max_frequency
    if highest and mobo.max_memory_frequency and highest > mobo.max_memory_frequency:
        cpu_limits = [c.spec.max_memory_frequency for c in cpus if c.spec.max_memory_frequency]
        effective = min([highest, mobo.max_memory_frequency, *cpu_limits])
        findings.warn(
            "ram_frequency_downgrade",
            f"Installed RAM ({highest}MHz) will run at {effective}MHz on this motherboard",
            "Memory will be downclocked; no action required",
            ram_frequency_mhz=highest,
            motherboard_max_frequency_mhz=mobo.max_memory_frequency,
            effective_frequency_mhz=effective,
            **performance_impact(effective, highest, "memory bandwidth"),
        )


# ──────────────────────────────────────────────
# Reverse: installed expansion cards → Motherboard
# ──────────────────────────────────────────────


def check_expansion_cards(
    findings: FindingCollector, mobo: MotherboardSpec, devices: List[Installed[PCIeCardSpec]]
) -> None:
    """Installed cards and risers fit the board slot counts, sizes and PCIe version."""
    cards = [d for d in devices if not d.spec.is_riser]
    risers = [d for d in devices if d.spec.is_riser]

    if len(cards) > mobo.total_pcie_slots:
        findings.block(
            "pcie_slot_count_exceeded",
            f"{len(cards)} expansion cards installed but motherboard has {mobo.total_pcie_slots} PCIe slots",
            f"Remove {len(cards) - mobo.total_pcie_slots} card(s) or choose a board with more slots",
            installed_cards=len(cards),
            pcie_slots=mobo.total_pcie_slots,
            deficit=len(cards) - mobo.total_pcie_slots,
        )
    if len(risers) > mobo.total_riser_slots:
        findings.block(
            "riser_slot_count_exceeded",
            f"{len(risers)} riser cards installed but motherboard has {mobo.total_riser_slots} riser slots",
            "Remove riser cards or choose a board with riser support",
            installed_risers=len(risers),
            riser_slots=mobo.total_riser_slots,
            deficit=len(risers) - mobo.total_riser_slots,
        )

    tracker = SlotTracker(PCIE_PREFIX, build_slot_pool(mobo.pcie_slots, PCIE_PREFIX))
    for card in cards:
        if not tracker.has_compatible_size(card.spec.slot_size):
            findings.block(
                "pcie_slot_size_incompatible",
                f"{card.spec.model or card.uuid} needs an {card.spec.slot_size} slot; motherboard has none that fit",
                f"Choose a motherboard with {card.spec.slot_size} or wider slots",
                card_uuid=card.uuid,
                required_size=card.spec.slot_size,
                available_sizes=sorted(tracker.pool, key=lambda s: int(s[1:])),
            )
        if card.spec.pcie_version and mobo.pcie_version and card.spec.pcie_version > mobo.pcie_version:
            findings.warn(
                "pcie_version_mismatch",
                f"{card.spec.model or card.uuid} is PCIe {card.spec.pcie_version}; motherboard slots are PCIe {mobo.pcie_version}",
                f"Card will run at PCIe {mobo.pcie_version}",
                card_uuid=card.uuid,
                **performance_impact(mobo.pcie_version, card.spec.pcie_version, "bandwidth"),
            )


# ──────────────────────────────────────────────
# Reverse: chassis → Motherboard (advisory)
# ──────────────────────────────────────────────


def form_factor_supported(form_factor: str, chassis: ChassisSpec) -> bool:
    wanted = form_factor.strip().lower()
    return any(s.strip().lower() == wanted for s in chassis.form_factor_support)


def check_chassis_fit(findings: FindingCollector, mobo: MotherboardSpec, chassis: Installed[ChassisSpec]) -> None:
    """Chassis support lists are often incomplete, so this never blocks."""
    if not mobo.form_factor or not chassis.spec.form_factor_support:
        return
    if not form_factor_supported(mobo.form_factor, chassis.spec):
        findings.warn(
            "chassis_form_factor_warning",
            (
                f"Motherboard form factor {mobo.form_factor} is not listed as supported by chassis "
                f"({', '.join(chassis.spec.form_factor_support)})"
            ),
            "Verify physical fitment manually before ordering",
            severity=Severity.LOW,
            chassis_uuid=chassis.uuid,
            motherboard_form_factor=mobo.form_factor,
            chassis_supported=chassis.spec.form_factor_support,
        )


# ──────────────────────────────────────────────
# Validator
# ──────────────────────────────────────────────


def validate_motherboard(ctx: ValidationContext, mobo: MotherboardSpec) -> FindingCollector:
    findings = FindingCollector()

    existing = ctx.snapshot.motherboard
    if existing is not None:
        findings.block(
            "motherboard_already_exists",
            f"Configuration already has motherboard {existing.uuid}",
            "Remove the installed motherboard before adding another",
            existing_motherboard_uuid=existing.uuid,
        )
        return findings

    cpus = ctx.cpus()
    check_cpus(findings, mobo, cpus)
    check_memory(findings, mobo, ctx.rams(), cpus)
    check_expansion_cards(findings, mobo, ctx.pcie_devices())

    chassis = ctx.chassis()
    if chassis is not None:
        check_chassis_fit(findings, mobo, chassis)

    if mobo.socket_source == "notes":
        findings.note(
            "socket_from_notes",
            f"Motherboard socket {mobo.socket} was read from free-text notes; verify against the datasheet",
        )

    findings.note(
        "motherboard_specifications",
        f"Motherboard {mobo.model or mobo.uuid}",
        socket=mobo.socket,
        max_cpus=mobo.max_cpus,
        memory_types=mobo.memory_types,
        memory_slots=mobo.memory_slots,
        max_memory_capacity=mobo.max_memory_capacity,
        max_memory_frequency=mobo.max_memory_frequency,
        pcie_slots=mobo.total_pcie_slots,
        riser_slots=mobo.total_riser_slots,
        pcie_version=mobo.pcie_version,
    )
    logger.debug("Motherboard %s: %d error(s)", mobo.uuid, len(findings.critical_errors))
    return findings
