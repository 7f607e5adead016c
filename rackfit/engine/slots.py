"""PCIe and riser slot tracking.

Slot pools come from the motherboard spec, assignments from the
``slot_position`` recorded on installed devices. Nothing is counted
separately, so the tracker always agrees with the snapshot it was built
from.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from rackfit.engine.context import Installed
from rackfit.engine.findings import FindingCollector
from rackfit.models.components import ComponentRef, MotherboardSpec, PCIeCardSpec, SlotGroup
from rackfit.models.config import ConfigurationSnapshot
from rackfit.models.verdict import Severity
from rackfit.specs.extraction import SLOT_SIZES, slot_lanes

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Size compatibility
# ──────────────────────────────────────────────

# A card may sit in any slot at least as wide as itself
SLOT_COMPATIBILITY: Dict[str, List[str]] = {
    "x1": ["x1", "x4", "x8", "x16"],
    "x4": ["x4", "x8", "x16"],
    "x8": ["x8", "x16"],
    "x16": ["x16"],
}

PCIE_PREFIX = "pcie"
RISER_PREFIX = "riser"

_SLOT_ID_RE = re.compile(r"^(pcie|riser)_(x\d+)_slot_(\d+)$")


def is_slot_compatible(card_size: str, slot_size: str) -> bool:
    return slot_size in SLOT_COMPATIBILITY.get(card_size, [])


def parse_slot_id(slot_id: str) -> Optional[Tuple[str, str]]:
    """``"pcie_x16_slot_2"`` -> ``("pcie", "x16")``; None if malformed."""
    match = _SLOT_ID_RE.match(slot_id or "")
    if not match:
        return None
    return match.group(1), match.group(2)


def build_slot_pool(groups: Iterable[SlotGroup], prefix: str) -> Dict[str, List[str]]:
    """Expand declared slot groups into slot ids, numbered per size."""
    pool: Dict[str, List[str]] = {}
    for group in groups:
        ids = pool.setdefault(group.size, [])
        for _ in range(group.count):
            ids.append(f"{prefix}_{group.size}_slot_{len(ids) + 1}")
    return pool


# ──────────────────────────────────────────────
# Tracker
# ──────────────────────────────────────────────


class SlotTracker:
    """Total, used and free slots of one pool (direct PCIe or riser)."""

    def __init__(
        self,
        kind: str,
        pool: Dict[str, List[str]],
        assignments: Optional[Dict[str, str]] = None,
    ) -> None:
        self.kind = kind
        self.pool = pool
        self.assignments: Dict[str, str] = dict(assignments or {})

    @classmethod
    def for_pcie(
        cls, motherboard: Optional[MotherboardSpec], snapshot: ConfigurationSnapshot
    ) -> "SlotTracker":
        groups = motherboard.pcie_slots if motherboard else []
        return cls(PCIE_PREFIX, build_slot_pool(groups, PCIE_PREFIX), _recorded(snapshot, PCIE_PREFIX))

    @classmethod
    def for_riser(
        cls, motherboard: Optional[MotherboardSpec], snapshot: ConfigurationSnapshot
    ) -> "SlotTracker":
        groups = motherboard.riser_slots if motherboard else []
        return cls(RISER_PREFIX, build_slot_pool(groups, RISER_PREFIX), _recorded(snapshot, RISER_PREFIX))

    # ── Counts ──

    @property
    def all_slots(self) -> List[str]:
        return [slot for size in SLOT_SIZES for slot in self.pool.get(size, [])]

    @property
    def total(self) -> int:
        return len(self.all_slots)

    @property
    def used(self) -> int:
        return sum(1 for slot in self.all_slots if slot in self.assignments)

    @property
    def available(self) -> int:
        return self.total - self.used

    def free_slots(self) -> Dict[str, List[str]]:
        return {
            size: [slot for slot in ids if slot not in self.assignments]
            for size, ids in self.pool.items()
        }

    def size_of(self, slot_id: str) -> Optional[str]:
        for size, ids in self.pool.items():
            if slot_id in ids:
                return size
        return None

    # ── Assignment ──

    def has_compatible_size(self, card_size: str) -> bool:
        """True if any slot, free or not, can physically take the card."""
        return any(self.pool.get(size) for size in SLOT_COMPATIBILITY.get(card_size, []))

    def assign_slot(self, card_size: str) -> Optional[str]:
        """First free slot of the smallest compatible size, or None."""
        for size in SLOT_COMPATIBILITY.get(card_size, []):
            for slot in self.pool.get(size, []):
                if slot not in self.assignments:
                    return slot
        return None

    def can_fit(self, card_size: str) -> bool:
        return self.assign_slot(card_size) is not None

    def reserve(self, card_size: str, uuid: str) -> Optional[str]:
        """Assign and record a slot for a device that has none recorded."""
        slot = self.assign_slot(card_size)
        if slot is not None:
            self.assignments[slot] = uuid
            logger.debug("Reserved %s for %s (%s)", slot, uuid, card_size)
        return slot

    def summary(self) -> dict:
        return {"total": self.total, "used": self.used, "available": self.available}


def _recorded(snapshot: ConfigurationSnapshot, prefix: str) -> Dict[str, str]:
    assignments: Dict[str, str] = {}
    for ref in snapshot.pcie_devices():
        position = ref.slot_position or ""
        if position.startswith(prefix + "_") and position not in assignments:
            assignments[position] = ref.uuid
    return assignments


# ──────────────────────────────────────────────
# Full slot-map validation
# ──────────────────────────────────────────────


def validate_slot_map(
    pcie: SlotTracker,
    riser: SlotTracker,
    devices: List[Installed[PCIeCardSpec]],
    unresolved: Iterable[ComponentRef] = (),
) -> FindingCollector:
    """Check every recorded slot assignment of a configuration.

    ``devices`` are installed expansion cards with their specs;
    ``unresolved`` are cards whose spec is missing, which still occupy
    their recorded slot.
    """
    findings = FindingCollector()
    seen: Dict[str, str] = {}
    trackers = {PCIE_PREFIX: pcie, RISER_PREFIX: riser}
    unplaced = {PCIE_PREFIX: 0, RISER_PREFIX: 0}

    entries = [(d.ref, d.spec) for d in devices] + [(ref, None) for ref in unresolved]
    for ref, spec in entries:
        kind = RISER_PREFIX if spec is not None and spec.is_riser else PCIE_PREFIX
        position = ref.slot_position
        if not position:
            unplaced[kind] += 1
            continue

        parsed = parse_slot_id(position)
        if parsed is None:
            findings.block(
                "invalid_slot_id",
                f"Slot position '{position}' of {ref.uuid} is not a valid slot id",
                "Re-assign the card to a slot on the motherboard",
                component_uuid=ref.uuid, slot_position=position,
            )
            continue

        prefix, slot_size = parsed
        if prefix != kind:
            findings.block(
                "riser_slot_cross_assignment",
                (
                    f"{'Riser card' if kind == RISER_PREFIX else 'Expansion card'} {ref.uuid} "
                    f"is recorded in {prefix} slot {position}"
                ),
                "Move riser cards to riser slots and other cards to PCIe slots",
                component_uuid=ref.uuid, slot_position=position,
            )
            continue

        if position in seen:
            findings.block(
                "slot_double_booked",
                f"Data corruption: slot {position} is assigned to both {seen[position]} and {ref.uuid}",
                "Remove one of the cards and re-assign it to a free slot",
                component_uuids=[seen[position], ref.uuid], slot_position=position,
            )
            continue
        seen[position] = ref.uuid

        tracker = trackers[prefix]
        if tracker.size_of(position) is None:
            findings.block(
                "slot_not_found",
                f"Slot {position} recorded for {ref.uuid} does not exist on the motherboard",
                "Re-assign the card to an existing slot",
                component_uuid=ref.uuid, slot_position=position,
            )
            continue

        if spec is None:
            continue
        if not is_slot_compatible(spec.slot_size, slot_size):
            findings.block(
                "pcie_slot_size_mismatch",
                f"{spec.model or ref.uuid} needs {spec.slot_size} but sits in {slot_size} slot {position}",
                f"Move the card to a slot of {spec.slot_size} or wider",
                component_uuid=ref.uuid, required_size=spec.slot_size, slot_size=slot_size,
            )
        elif slot_lanes(slot_size) > slot_lanes(spec.slot_size):
            findings.warn(
                "pcie_oversized_slot",
                f"{spec.model or ref.uuid} ({spec.slot_size}) occupies larger {slot_size} slot {position}",
                f"Move it to a {spec.slot_size} slot if one is free to keep {slot_size} slots available",
                severity=Severity.LOW,
                component_uuid=ref.uuid, required_size=spec.slot_size, slot_size=slot_size,
            )

    for kind, tracker in trackers.items():
        demand = tracker.used + unplaced[kind]
        if demand > tracker.total:
            findings.block(
                f"{kind}_slot_overcommitted",
                f"{demand} cards need {kind} slots but the motherboard has {tracker.total}",
                "Remove cards or choose a motherboard with more slots",
                required=demand, total=tracker.total, deficit=demand - tracker.total,
            )

    if not findings.critical_errors and not findings.warnings:
        findings.note(
            "slot_map_valid",
            "All expansion slot assignments are consistent",
            pcie=pcie.summary(), riser=riser.summary(),
        )
    return findings
