"""CPU addition rules.

Forward checks run the new CPU against the installed motherboard; reverse
checks run installed RAM and expansion cards against the new CPU.
"""

from __future__ import annotations

import logging
from typing import List

from rackfit.engine.capacity import MemoryTracker
from rackfit.engine.context import Installed, ValidationContext
from rackfit.engine.findings import FindingCollector, performance_impact
from rackfit.models.components import CPUSpec, MotherboardSpec, PCIeCardSpec, RAMSpec
from rackfit.specs.extraction import sockets_match

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Forward: CPU → Motherboard
# ──────────────────────────────────────────────


def check_socket(findings: FindingCollector, cpu: CPUSpec, mobo: Installed[MotherboardSpec]) -> None:
    """CPU.socket matches Motherboard.socket after normalization."""
    if not cpu.socket or not mobo.spec.socket:
        return
    if not sockets_match(cpu.socket, mobo.spec.socket):
        findings.block(
            "socket_mismatch",
            f"CPU socket ({cpu.socket}) does not match motherboard socket ({mobo.spec.socket})",
            f"Choose a CPU with socket {mobo.spec.socket} or replace the motherboard",
            cpu_socket=cpu.socket,
            motherboard_socket=mobo.spec.socket,
            motherboard_uuid=mobo.uuid,
        )


def check_cpu_count(
    findings: FindingCollector, existing: List[Installed[CPUSpec]], mobo: Installed[MotherboardSpec]
) -> None:
    """Installed CPUs < Motherboard.max_cpus, since the new CPU is one more."""
    installed = sum(c.ref.quantity for c in existing)
    if not installed < mobo.spec.max_cpus:
        findings.block(
            "cpu_socket_limit_exceeded",
            f"Motherboard supports {mobo.spec.max_cpus} CPU(s); {installed} already installed",
            "Remove an installed CPU or choose a multi-socket motherboard",
            current_cpus=installed,
            max_cpus=mobo.spec.max_cpus,
        )


def check_pcie_version(findings: FindingCollector, cpu: CPUSpec, mobo: MotherboardSpec) -> None:
    """CPU PCIe version above the board's only warns; the link trains lower."""
    if cpu.pcie_version is None or mobo.pcie_version is None:
        return
    if cpu.pcie_version > mobo.pcie_version:
        findings.warn(
            "pcie_version_mismatch",
            (
                f"CPU supports PCIe {cpu.pcie_version} but motherboard supports "
                f"PCIe {mobo.pcie_version}; devices will run at PCIe {mobo.pcie_version}"
            ),
            "Use a motherboard with matching PCIe generation for full bandwidth",
            cpu_pcie_version=cpu.pcie_version,
            motherboard_pcie_version=mobo.pcie_version,
            **performance_impact(mobo.pcie_version, cpu.pcie_version, "bandwidth"),
        )


def check_socket_mixing(findings: FindingCollector, cpu: CPUSpec, existing: List[Installed[CPUSpec]]) -> None:
    """All CPUs in a multi-socket system share one socket."""
    for other in existing:
        if cpu.socket and other.spec.socket and not sockets_match(cpu.socket, other.spec.socket):
            findings.block(
                "cpu_socket_mixing",
                f"CPU socket ({cpu.socket}) differs from installed CPU {other.uuid} ({other.spec.socket})",
                "Use identical CPUs in multi-socket configurations",
                installed_cpu_uuid=other.uuid,
                installed_socket=other.spec.socket,
                cpu_socket=cpu.socket,
            )


# ──────────────────────────────────────────────
# Reverse: installed RAM → CPU
# ──────────────────────────────────────────────


def check_ram_against_cpu(findings: FindingCollector, cpu: CPUSpec, rams: List[Installed[RAMSpec]]) -> None:
    """Installed RAM types, total capacity, ECC and speed within the CPU limits."""
    if not rams:
        return
    memory = MemoryTracker(None, rams)

    if cpu.memory_types:
        unsupported = [t for t in memory.installed_types if t not in cpu.memory_types]
        if unsupported:
            findings.block(
                "ram_type_incompatibility",
                (
                    f"Installed memory type(s) {', '.join(unsupported)} not supported by CPU "
                    f"(supports {', '.join(cpu.memory_types)})"
                ),
                "Remove the incompatible RAM or choose a CPU supporting it",
                installed_types=memory.installed_types,
                cpu_supported_types=cpu.memory_types,
            )

    if cpu.max_memory_capacity is not None and memory.installed_capacity > cpu.max_memory_capacity:
        excess = memory.installed_capacity - cpu.max_memory_capacity
        findings.block(
            "ram_capacity_exceeded",
            (
                f"Installed RAM ({memory.installed_capacity}GB) exceeds CPU maximum "
                f"({cpu.max_memory_capacity}GB) by {excess}GB"
            ),
            f"Remove at least {excess}GB of RAM or choose a CPU with higher memory capacity",
            installed_capacity_gb=memory.installed_capacity,
            cpu_max_capacity_gb=cpu.max_memory_capacity,
            excess_gb=excess,
        )

    if cpu.ecc_required:
        non_ecc = [m.uuid for m in rams if not m.spec.ecc]
        if non_ecc:
            findings.block(
                "ecc_required",
                f"CPU requires ECC memory but {len(non_ecc)} installed module(s) are non-ECC",
                "Replace non-ECC modules with ECC memory",
                non_ecc_modules=non_ecc,
                ecc_requirement="mandatory",
            )

    highest = memory.max_frequency
    if cpu.max_memory_frequency and highest and highest > cpu.max_memory_frequency:
        findings.warn(
            "ram_frequency_downgrade",
            f"Installed RAM ({highest}MHz) will run at CPU maximum {cpu.max_memory_frequency}MHz",
            "Memory will be downclocked; no action required",
            ram_frequency_mhz=highest,
            cpu_max_frequency_mhz=cpu.max_memory_frequency,
            **performance_impact(cpu.max_memory_frequency, highest, "memory bandwidth"),
        )


# ──────────────────────────────────────────────
# Reverse: installed expansion cards → CPU lanes
# ──────────────────────────────────────────────


def check_lane_budget(
    findings: FindingCollector,
    cpu: CPUSpec,
    existing: List[Installed[CPUSpec]],
    devices: List[Installed[PCIeCardSpec]],
) -> None:
    """Σ card slot widths ≤ lanes of the new CPU plus installed CPUs."""
    if cpu.pcie_lanes is None:
        return
    budget = cpu.pcie_lanes + sum(c.spec.pcie_lanes or 0 for c in existing)
    cards = [d for d in devices if not d.spec.is_riser]
    required = sum(d.spec.lanes for d in cards)
    if required > budget:
        deficit = required - budget
        findings.block(
            "pcie_lane_budget_exceeded",
            f"Installed expansion cards need {required} PCIe lanes but CPU(s) provide {budget}",
            f"Remove cards using at least {deficit} lanes or choose a CPU with more lanes",
            required_lanes=required,
            available_lanes=budget,
            deficit=deficit,
            devices={d.uuid: d.spec.slot_size for d in cards},
        )


# ──────────────────────────────────────────────
# Validator
# ──────────────────────────────────────────────


def validate_cpu(ctx: ValidationContext, cpu: CPUSpec) -> FindingCollector:
    findings = FindingCollector()
    existing = ctx.cpus()
    mobo = ctx.motherboard()

    if mobo is not None:
        check_socket(findings, cpu, mobo)
        check_cpu_count(findings, existing, mobo)
        check_pcie_version(findings, cpu, mobo.spec)
    else:
        findings.note(
            "no_motherboard",
            "No motherboard yet; socket compatibility will be checked when one is added",
        )

    check_socket_mixing(findings, cpu, existing)
    check_ram_against_cpu(findings, cpu, ctx.rams())
    check_lane_budget(findings, cpu, existing, ctx.pcie_devices())

    if cpu.socket_source == "notes":
        findings.note(
            "socket_from_notes",
            f"CPU socket {cpu.socket} was read from free-text notes; verify against the datasheet",
        )

    findings.note(
        "cpu_specifications",
        f"CPU {cpu.model or cpu.uuid}",
        socket=cpu.socket,
        memory_types=cpu.memory_types,
        max_memory_frequency=cpu.max_memory_frequency,
        max_memory_capacity=cpu.max_memory_capacity,
        pcie_lanes=cpu.pcie_lanes,
        pcie_version=cpu.pcie_version,
        ecc_required=cpu.ecc_required,
    )
    logger.debug("CPU %s: %d error(s)", cpu.uuid, len(findings.critical_errors))
    return findings
