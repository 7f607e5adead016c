"""Expansion card addition rules for NICs, PCIe cards and HBA cards.

Riser cards go to the riser pool, everything else to the direct PCIe
pool. Installed cards that have no recorded slot are placed first, so
the new card never takes a slot one of them needs.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from rackfit.engine.context import Installed, ValidationContext
from rackfit.engine.findings import FindingCollector, performance_impact
from rackfit.engine.slots import SlotTracker
from rackfit.models.components import PCIE_DEVICE_TYPES, ComponentRef, MotherboardSpec, PCIeCardSpec
from rackfit.models.verdict import Severity
from rackfit.settings import DEFAULT_CARD_SLOT
from rackfit.specs.extraction import slot_lanes

logger = logging.getLogger(__name__)


def _place_unrecorded(
    tracker: SlotTracker,
    devices: List[Installed[PCIeCardSpec]],
    unresolved: Iterable[ComponentRef] = (),
    fallback_size: str = DEFAULT_CARD_SLOT,
) -> None:
    """Reserve slots for installed cards of this pool that have no position yet.

    Cards whose spec is missing still take a slot, sized ``fallback_size``.
    """
    pending = [(d.uuid, d.spec.slot_size) for d in devices if not d.ref.slot_position]
    pending += [(r.uuid, fallback_size) for r in unresolved if not r.slot_position]
    # Widest cards first; they have the fewest options
    for uuid, size in sorted(pending, key=lambda p: slot_lanes(p[1]), reverse=True):
        if tracker.reserve(size, uuid) is None:
            logger.debug("No slot left for installed card %s", uuid)


def check_slot(
    findings: FindingCollector,
    card: PCIeCardSpec,
    mobo: Installed[MotherboardSpec],
    ctx: ValidationContext,
) -> Optional[str]:
    """Assign the new card the smallest free slot of its pool that fits."""
    if card.is_riser:
        tracker = SlotTracker.for_riser(mobo.spec, ctx.snapshot)
        peers = [d for d in ctx.pcie_devices() if d.spec.is_riser]
        _place_unrecorded(tracker, peers)
    else:
        tracker = SlotTracker.for_pcie(mobo.spec, ctx.snapshot)
        peers = [d for d in ctx.pcie_devices() if not d.spec.is_riser]
        unresolved = [r for r in ctx.missing if r.type in PCIE_DEVICE_TYPES]
        _place_unrecorded(tracker, peers, unresolved, ctx.settings.default_card_slot)

    slot = tracker.assign_slot(card.slot_size)
    if slot is None:
        if card.is_riser:
            findings.block(
                "riser_slots_unavailable",
                f"No free riser slot ({tracker.used}/{tracker.total} used)",
                "Remove a riser card or choose a motherboard with more riser slots",
                **tracker.summary(),
            )
        elif not tracker.has_compatible_size(card.slot_size):
            findings.block(
                "pcie_slot_size_incompatible",
                f"Card needs an {card.slot_size} slot; motherboard has no slot that wide",
                f"Choose a motherboard with {card.slot_size} slots or a narrower card",
                required_size=card.slot_size,
                available_sizes=sorted(tracker.pool, key=slot_lanes),
            )
        else:
            findings.block(
                "pcie_slots_exhausted",
                f"No free PCIe slot fits an {card.slot_size} card ({tracker.used}/{tracker.total} used)",
                "Remove an expansion card or choose a motherboard with more slots",
                required_size=card.slot_size,
                free_slots=tracker.free_slots(),
                **tracker.summary(),
            )
        return None

    slot_size = tracker.size_of(slot) or card.slot_size
    findings.note(
        "pcie_slot_assignment",
        f"Card will be installed in {slot}",
        slot_id=slot,
        slot_size=slot_size,
        required_size=card.slot_size,
        remaining_after=tracker.available - 1,
    )
    if slot_lanes(slot_size) > slot_lanes(card.slot_size):
        findings.note(
            "pcie_larger_slot_used",
            f"{card.slot_size} card uses a larger {slot_size} slot; no {card.slot_size} slot is free",
            slot_id=slot,
            slot_size=slot_size,
            required_size=card.slot_size,
        )
    return slot


def check_version(findings: FindingCollector, card: PCIeCardSpec, mobo: MotherboardSpec) -> None:
    """Card.pcie_version <= Motherboard.pcie_version, else the card runs slower."""
    if card.pcie_version is None or mobo.pcie_version is None:
        return
    if card.pcie_version > mobo.pcie_version:
        findings.warn(
            "pcie_version_mismatch",
            f"Card is PCIe {card.pcie_version}; motherboard slots are PCIe {mobo.pcie_version}",
            f"Card will run at PCIe {mobo.pcie_version}",
            card_pcie_version=card.pcie_version,
            motherboard_pcie_version=mobo.pcie_version,
            **performance_impact(mobo.pcie_version, card.pcie_version, "bandwidth"),
        )


def check_lanes(findings: FindingCollector, card: PCIeCardSpec, ctx: ValidationContext) -> None:
    """Σ card widths including the new one vs. lanes of installed CPUs."""
    if card.is_riser:
        return
    budget = ctx.cpu_lanes()
    if budget is None:
        return
    installed = [d for d in ctx.pcie_devices() if not d.spec.is_riser]
    used = sum(d.spec.lanes for d in installed) + card.lanes
    if used > budget:
        findings.block(
            "pcie_lane_budget_exceeded",
            f"Adding this {card.slot_size} card needs {used} PCIe lanes; CPU(s) provide {budget}",
            f"Free at least {used - budget} lanes or choose a CPU with more lanes",
            required_lanes=used,
            available_lanes=budget,
            deficit=used - budget,
        )
    elif used == budget:
        findings.warn(
            "pcie_lane_budget_at_max",
            f"All {budget} CPU PCIe lanes will be in use",
            "No lanes remain for further expansion cards",
            severity=Severity.LOW,
            used_lanes=used,
            available_lanes=budget,
        )


def validate_pcie_device(ctx: ValidationContext, card: PCIeCardSpec) -> FindingCollector:
    findings = FindingCollector()

    mobo = ctx.motherboard()
    if mobo is not None:
        findings.assigned_slot = check_slot(findings, card, mobo, ctx)
        check_version(findings, card, mobo.spec)
    else:
        findings.note(
            "no_motherboard",
            "No motherboard yet; a slot will be assigned when one is added",
        )

    check_lanes(findings, card, ctx)

    findings.note(
        f"{card.component_type}_specifications",
        f"{card.subtype or card.component_type} {card.model or card.uuid}",
        slot_size=card.slot_size,
        pcie_version=card.pcie_version,
        subtype=card.subtype,
    )
    logger.debug("Card %s: slot %s", card.uuid, findings.assigned_slot)
    return findings
