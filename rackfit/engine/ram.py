"""RAM addition rules: motherboard limits, per-CPU limits, peer matching
and the effective-frequency cascade."""

from __future__ import annotations

import logging
from typing import List, Optional

from rackfit.engine.capacity import MemoryTracker
from rackfit.engine.context import Installed, ValidationContext
from rackfit.engine.findings import FindingCollector, performance_impact
from rackfit.models.components import CPUSpec, MotherboardSpec, RAMSpec
from rackfit.models.verdict import Severity

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Forward: RAM → Motherboard
# ──────────────────────────────────────────────


def check_motherboard(
    findings: FindingCollector,
    ram: RAMSpec,
    mobo: Installed[MotherboardSpec],
    installed: List[Installed[RAMSpec]],
) -> None:
    """RAM type, form factor, slots and capacity within the motherboard limits."""
    board = mobo.spec
    memory = MemoryTracker(board.memory_slots, installed)

    if board.memory_types and ram.memory_type and ram.memory_type not in board.memory_types:
        findings.block(
            "ram_type_incompatible_motherboard",
            f"{ram.memory_type} is not supported by motherboard ({', '.join(board.memory_types)})",
            f"Choose {' or '.join(board.memory_types)} memory",
            ram_type=ram.memory_type,
            motherboard_types=board.memory_types,
        )

    if board.memory_form_factor and ram.form_factor and ram.form_factor != board.memory_form_factor:
        findings.block(
            "ram_form_factor_incompatible_motherboard",
            f"{ram.form_factor} module does not fit motherboard {board.memory_form_factor} slots",
            f"Choose {board.memory_form_factor} modules",
            ram_form_factor=ram.form_factor,
            motherboard_form_factor=board.memory_form_factor,
        )

    deficit = memory.slot_deficit(adding=1)
    if deficit:
        findings.block(
            "ram_slot_limit_exceeded",
            f"All {board.memory_slots} memory slots are occupied ({memory.used_slots} used)",
            "Remove a module or choose a motherboard with more memory slots",
            used_slots=memory.used_slots,
            total_slots=board.memory_slots,
            deficit=deficit,
        )

    if board.per_slot_capacity and ram.capacity and ram.capacity > board.per_slot_capacity:
        findings.block(
            "ram_per_slot_capacity_exceeded",
            f"{ram.capacity}GB module exceeds motherboard per-slot maximum {board.per_slot_capacity}GB",
            f"Use modules of {board.per_slot_capacity}GB or less",
            module_capacity_gb=ram.capacity,
            motherboard_per_slot_max_gb=board.per_slot_capacity,
        )

    total = memory.capacity_if_added(ram.capacity)
    if board.max_memory_capacity is not None and total > board.max_memory_capacity:
        findings.block(
            "ram_total_capacity_exceeded_motherboard",
            (
                f"Total RAM would be {total}GB ({memory.installed_capacity}GB installed + "
                f"{ram.capacity}GB new), motherboard maximum is {board.max_memory_capacity}GB"
            ),
            "Use smaller modules or remove installed RAM",
            current_capacity_gb=memory.installed_capacity,
            new_capacity_gb=ram.capacity,
            total_capacity_gb=total,
            max_capacity_gb=board.max_memory_capacity,
            excess_gb=total - board.max_memory_capacity,
        )

    if ram.frequency and board.max_memory_frequency and ram.frequency > board.max_memory_frequency:
        findings.warn(
            "ram_frequency_downgrade_motherboard",
            f"{ram.frequency}MHz RAM will run at motherboard maximum {board.max_memory_frequency}MHz",
            "Memory will be downclocked; choose slower RAM to save cost",
            ram_frequency_mhz=ram.frequency,
            motherboard_max_frequency_mhz=board.max_memory_frequency,
            **performance_impact(board.max_memory_frequency, ram.frequency, "memory bandwidth"),
        )


# ──────────────────────────────────────────────
# Forward: RAM → each CPU
# ──────────────────────────────────────────────


def check_cpu(
    findings: FindingCollector,
    ram: RAMSpec,
    cpu: Installed[CPUSpec],
    installed: List[Installed[RAMSpec]],
) -> None:
    """RAM type, ECC and total capacity within the installed CPU limits."""
    spec = cpu.spec
    label = spec.model or cpu.uuid

    if spec.memory_types and ram.memory_type and ram.memory_type not in spec.memory_types:
        findings.block(
            "ram_type_incompatible_cpu",
            f"{ram.memory_type} is not supported by CPU {label} ({', '.join(spec.memory_types)})",
            f"Choose {' or '.join(spec.memory_types)} memory",
            cpu_uuid=cpu.uuid,
            ram_type=ram.memory_type,
            cpu_types=spec.memory_types,
        )

    if spec.ecc_required and not ram.ecc:
        findings.block(
            "ecc_required_by_cpu",
            f"CPU {label} requires ECC memory; this module is non-ECC",
            "Choose an ECC module",
            cpu_uuid=cpu.uuid,
        )

    memory = MemoryTracker(None, installed)
    total = memory.capacity_if_added(ram.capacity)
    if spec.max_memory_capacity is not None and total > spec.max_memory_capacity:
        findings.block(
            "ram_total_capacity_exceeded_cpu",
            f"Total RAM would be {total}GB, CPU {label} supports {spec.max_memory_capacity}GB",
            "Use smaller modules or remove installed RAM",
            cpu_uuid=cpu.uuid,
            current_capacity_gb=memory.installed_capacity,
            new_capacity_gb=ram.capacity,
            total_capacity_gb=total,
            max_capacity_gb=spec.max_memory_capacity,
            excess_gb=total - spec.max_memory_capacity,
        )

    if ram.frequency and spec.max_memory_frequency and ram.frequency > spec.max_memory_frequency:
        findings.warn(
            "ram_frequency_downgrade_cpu",
            f"{ram.frequency}MHz RAM will run at CPU {label} maximum {spec.max_memory_frequency}MHz",
            "Memory will be downclocked; choose slower RAM to save cost",
            cpu_uuid=cpu.uuid,
            ram_frequency_mhz=ram.frequency,
            cpu_max_frequency_mhz=spec.max_memory_frequency,
            **performance_impact(spec.max_memory_frequency, ram.frequency, "memory bandwidth"),
        )


# ──────────────────────────────────────────────
# Peer: RAM ↔ installed RAM
# ──────────────────────────────────────────────


def check_peers(findings: FindingCollector, ram: RAMSpec, installed: List[Installed[RAMSpec]]) -> None:
    """Mixed types, form factors or ECC block; mixed speeds only warn."""
    if not installed:
        return

    types = sorted({m.spec.memory_type for m in installed if m.spec.memory_type})
    if ram.memory_type and types and types != [ram.memory_type]:
        findings.block(
            "ram_type_mixing",
            f"Cannot mix {ram.memory_type} with installed {', '.join(types)} memory",
            f"Use {types[0]} modules" if len(types) == 1 else "Remove mixed memory before adding more",
            new_type=ram.memory_type,
            installed_types=types,
        )

    form_factors = sorted({m.spec.form_factor for m in installed if m.spec.form_factor})
    if ram.form_factor and form_factors and form_factors != [ram.form_factor]:
        findings.block(
            "ram_form_factor_mixing",
            f"Cannot mix {ram.form_factor} with installed {', '.join(form_factors)} modules",
            "Use modules of the same form factor",
            new_form_factor=ram.form_factor,
            installed_form_factors=form_factors,
        )

    ecc_flags = {m.spec.ecc for m in installed}
    if len(ecc_flags) == 1 and ram.ecc not in ecc_flags:
        installed_ecc = ecc_flags.pop()
        findings.block(
            "ram_ecc_mixing",
            (
                f"Cannot add {'ECC' if ram.ecc else 'non-ECC'} module to "
                f"{'ECC' if installed_ecc else 'non-ECC'} memory"
            ),
            f"Use {'ECC' if installed_ecc else 'non-ECC'} modules",
            new_ecc=ram.ecc,
            installed_ecc=installed_ecc,
        )

    speeds = sorted({m.spec.frequency for m in installed if m.spec.frequency})
    if ram.frequency and speeds and speeds != [ram.frequency]:
        effective = min([ram.frequency, *speeds])
        findings.warn(
            "ram_speed_mixing",
            f"Mixed memory speeds; all modules will run at {effective}MHz",
            "Use modules of matching speed for best performance",
            severity=Severity.LOW,
            new_frequency_mhz=ram.frequency,
            installed_frequencies_mhz=speeds,
            effective_frequency_mhz=effective,
            **performance_impact(effective, max([ram.frequency, *speeds]), "memory bandwidth"),
        )


# ──────────────────────────────────────────────
# Frequency cascade
# ──────────────────────────────────────────────


def limiting_component(ram_mhz: int, mobo_max: Optional[int], cpu_max: Optional[int]) -> Optional[str]:
    """Name the component that caps memory speed, or None if nothing does.

    The CPU limits only when its maximum is strictly below both the
    motherboard's and the RAM rating; otherwise a motherboard maximum
    below the rating is the limiter.
    """
    mobo_limit = mobo_max if mobo_max is not None else float("inf")
    cpu_limit = cpu_max if cpu_max is not None else float("inf")
    if cpu_limit < mobo_limit and cpu_limit < ram_mhz:
        return "cpu"
    if mobo_limit < ram_mhz:
        return "motherboard"
    return None


def effective_frequency(ram_mhz: int, mobo_max: Optional[int], cpu_max: Optional[int]) -> int:
    return min(v for v in (ram_mhz, mobo_max, cpu_max) if v is not None)


def check_cascade(
    findings: FindingCollector,
    ram: RAMSpec,
    mobo: Installed[MotherboardSpec],
    cpus: List[Installed[CPUSpec]],
) -> None:
    """effective = min(ram, motherboard max, most restrictive CPU max)."""
    if not ram.frequency:
        return
    cpu_limits = [c for c in cpus if c.spec.max_memory_frequency]
    slowest = min(cpu_limits, key=lambda c: c.spec.max_memory_frequency) if cpu_limits else None
    cpu_max = slowest.spec.max_memory_frequency if slowest else None
    mobo_max = mobo.spec.max_memory_frequency

    effective = effective_frequency(ram.frequency, mobo_max, cpu_max)
    if effective >= ram.frequency:
        return

    limiter = limiting_component(ram.frequency, mobo_max, cpu_max)
    limiter_uuid = slowest.uuid if limiter == "cpu" and slowest else mobo.uuid
    findings.warn(
        "ram_frequency_cascade_limiting",
        f"Memory rated {ram.frequency}MHz will run at {effective}MHz, limited by the {limiter}",
        f"Choose {effective}MHz memory to avoid paying for unused speed",
        limiting_component=limiter,
        limiting_component_uuid=limiter_uuid,
        ram_frequency_mhz=ram.frequency,
        motherboard_max_frequency_mhz=mobo_max,
        cpu_max_frequency_mhz=cpu_max,
        effective_frequency_mhz=effective,
        **performance_impact(effective, ram.frequency, "memory bandwidth"),
    )


# ──────────────────────────────────────────────
# Validator
# ──────────────────────────────────────────────


def validate_ram(ctx: ValidationContext, ram: RAMSpec) -> FindingCollector:
    findings = FindingCollector()
    installed = ctx.rams()
    mobo = ctx.motherboard()
    cpus = ctx.cpus()

    if mobo is not None:
        check_motherboard(findings, ram, mobo, installed)
    else:
        findings.note(
            "no_motherboard",
            "No motherboard yet; slot and capacity limits will be checked when one is added",
        )

    for cpu in cpus:
        check_cpu(findings, ram, cpu, installed)

    check_peers(findings, ram, installed)

    if mobo is not None and cpus:
        check_cascade(findings, ram, mobo, cpus)

    findings.note(
        "ram_specifications",
        f"RAM {ram.model or ram.uuid}",
        memory_type=ram.memory_type,
        form_factor=ram.form_factor,
        capacity_gb=ram.capacity,
        frequency_mhz=ram.frequency,
        ecc=ram.ecc,
    )
    logger.debug("RAM %s: %d error(s)", ram.uuid, len(findings.critical_errors))
    return findings
