"""Tests for the PCIe / riser slot tracker and slot-map validation."""

from __future__ import annotations

import pytest

from rackfit.engine.context import Installed
from rackfit.engine.slots import (
    SlotTracker,
    build_slot_pool,
    is_slot_compatible,
    parse_slot_id,
    validate_slot_map,
)
from rackfit.models import ComponentRef, ConfigurationSnapshot, MotherboardSpec, PCIeCardSpec, SlotGroup


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────


def _pool(**counts) -> dict:
    """``_pool(x16=2, x8=1)`` -> slot pool with those counts."""
    return build_slot_pool([SlotGroup(size=size, count=n) for size, n in counts.items()], "pcie")


def _card(uuid: str, size: str = "x8", slot: str | None = None, subtype: str | None = None, kind: str = "nic"):
    ref = ComponentRef(type=kind, uuid=uuid, slot_position=slot)
    return Installed(ref, PCIeCardSpec(component_type=kind, uuid=uuid, slot_size=size, subtype=subtype))


def _board(pcie: dict, riser: dict | None = None) -> MotherboardSpec:
    return MotherboardSpec(
        uuid="mb-1",
        pcie_slots=[SlotGroup(size=s, count=n) for s, n in pcie.items()],
        riser_slots=[SlotGroup(size=s, count=n) for s, n in (riser or {}).items()],
    )


def _trackers(board: MotherboardSpec, cards):
    snapshot = ConfigurationSnapshot.from_refs("cfg-1", [c.ref for c in cards])
    return SlotTracker.for_pcie(board, snapshot), SlotTracker.for_riser(board, snapshot)


# ──────────────────────────────────────────────
# Compatibility and ids
# ──────────────────────────────────────────────


class TestCompatibility:
    @pytest.mark.parametrize(
        "card, slot, ok",
        [
            ("x1", "x16", True),
            ("x4", "x8", True),
            ("x8", "x16", True),
            ("x8", "x4", False),
            ("x16", "x8", False),
            ("x16", "x16", True),
        ],
    )
    def test_matrix(self, card, slot, ok):
        assert is_slot_compatible(card, slot) is ok

    def test_parse_slot_id(self):
        assert parse_slot_id("pcie_x16_slot_2") == ("pcie", "x16")
        assert parse_slot_id("riser_x8_slot_1") == ("riser", "x8")
        assert parse_slot_id("slot-3") is None

    def test_pool_ids_numbered_per_size(self):
        pool = build_slot_pool(
            [SlotGroup(size="x16", count=2), SlotGroup(size="x8", count=1), SlotGroup(size="x16", count=1)],
            "pcie",
        )
        assert pool == {
            "x16": ["pcie_x16_slot_1", "pcie_x16_slot_2", "pcie_x16_slot_3"],
            "x8": ["pcie_x8_slot_1"],
        }


# ──────────────────────────────────────────────
# Tracker
# ──────────────────────────────────────────────


class TestSlotTracker:
    def test_counts(self):
        tracker = SlotTracker("pcie", _pool(x16=2, x8=1), {"pcie_x8_slot_1": "nic-1"})
        assert tracker.total == 3
        assert tracker.used == 1
        assert tracker.available == 2

    def test_smallest_compatible_slot_first(self):
        tracker = SlotTracker("pcie", _pool(x16=1, x4=1))
        assert tracker.assign_slot("x4") == "pcie_x4_slot_1"

    def test_larger_slot_when_exact_taken(self):
        tracker = SlotTracker("pcie", _pool(x16=1, x4=1), {"pcie_x4_slot_1": "nic-1"})
        assert tracker.assign_slot("x4") == "pcie_x16_slot_1"

    def test_no_compatible_size(self):
        tracker = SlotTracker("pcie", _pool(x8=2))
        assert tracker.assign_slot("x16") is None
        assert not tracker.has_compatible_size("x16")
        assert tracker.has_compatible_size("x4")
        assert tracker.can_fit("x4")
        assert not tracker.can_fit("x16")

    def test_assignment_never_reuses_a_slot(self):
        tracker = SlotTracker("pcie", _pool(x16=2, x8=2, x4=1), {"pcie_x8_slot_2": "nic-0"})
        handed_out = []
        while True:
            slot = tracker.reserve("x1", f"card-{len(handed_out)}")
            if slot is None:
                break
            assert slot not in handed_out
            handed_out.append(slot)
        assert "pcie_x8_slot_2" not in handed_out
        assert len(handed_out) == 4
        assert tracker.available == 0

    def test_built_from_recorded_positions(self):
        board = _board({"x16": 2}, {"x16": 1})
        pcie, riser = _trackers(
            board,
            [
                _card("nic-1", slot="pcie_x16_slot_1"),
                _card("riser-1", "x16", slot="riser_x16_slot_1", subtype="Riser Card", kind="pciecard"),
            ],
        )
        assert pcie.assignments == {"pcie_x16_slot_1": "nic-1"}
        assert riser.assignments == {"riser_x16_slot_1": "riser-1"}
        assert pcie.free_slots() == {"x16": ["pcie_x16_slot_2"]}


# ──────────────────────────────────────────────
# Full slot map
# ──────────────────────────────────────────────


class TestSlotMap:
    def test_consistent_map(self):
        cards = [_card("nic-1", "x8", "pcie_x8_slot_1"), _card("nic-2", "x16", "pcie_x16_slot_1")]
        pcie, riser = _trackers(_board({"x16": 1, "x8": 1}), cards)
        findings = validate_slot_map(pcie, riser, cards)
        assert not findings.blocked
        assert [f.type for f in findings.info_messages] == ["slot_map_valid"]

    def test_double_booking_blocks(self):
        cards = [_card("nic-1", "x8", "pcie_x16_slot_1"), _card("nic-2", "x8", "pcie_x16_slot_1")]
        pcie, riser = _trackers(_board({"x16": 2}), cards)
        findings = validate_slot_map(pcie, riser, cards)
        error = next(f for f in findings.critical_errors if f.type == "slot_double_booked")
        assert "Data corruption" in error.message
        assert error.details["component_uuids"] == ["nic-1", "nic-2"]

    def test_riser_in_pcie_slot(self):
        cards = [_card("riser-1", "x16", "pcie_x16_slot_1", subtype="Riser Card", kind="pciecard")]
        pcie, riser = _trackers(_board({"x16": 1}, {"x16": 1}), cards)
        findings = validate_slot_map(pcie, riser, cards)
        assert [f.type for f in findings.critical_errors] == ["riser_slot_cross_assignment"]

    def test_card_in_riser_slot(self):
        cards = [_card("nic-1", "x8", "riser_x16_slot_1")]
        pcie, riser = _trackers(_board({"x16": 1}, {"x16": 1}), cards)
        findings = validate_slot_map(pcie, riser, cards)
        assert [f.type for f in findings.critical_errors] == ["riser_slot_cross_assignment"]

    def test_undersized_slot_blocks(self):
        cards = [_card("gpu-1", "x16", "pcie_x8_slot_1", kind="pciecard")]
        pcie, riser = _trackers(_board({"x8": 1}), cards)
        findings = validate_slot_map(pcie, riser, cards)
        assert [f.type for f in findings.critical_errors] == ["pcie_slot_size_mismatch"]

    def test_oversized_slot_warns(self):
        cards = [_card("nic-1", "x4", "pcie_x16_slot_1")]
        pcie, riser = _trackers(_board({"x16": 1}), cards)
        findings = validate_slot_map(pcie, riser, cards)
        assert not findings.blocked
        assert [f.type for f in findings.warnings] == ["pcie_oversized_slot"]

    def test_missing_slot(self):
        cards = [_card("nic-1", "x8", "pcie_x8_slot_4")]
        pcie, riser = _trackers(_board({"x8": 2}), cards)
        findings = validate_slot_map(pcie, riser, cards)
        assert [f.type for f in findings.critical_errors] == ["slot_not_found"]

    def test_invalid_slot_id(self):
        cards = [_card("nic-1", "x8", "slot three")]
        pcie, riser = _trackers(_board({"x8": 2}), cards)
        findings = validate_slot_map(pcie, riser, cards)
        assert [f.type for f in findings.critical_errors] == ["invalid_slot_id"]

    def test_unplaced_cards_overcommit(self):
        cards = [_card("nic-1", "x8", "pcie_x8_slot_1"), _card("nic-2", "x8"), _card("nic-3", "x8")]
        pcie, riser = _trackers(_board({"x8": 2}), cards)
        findings = validate_slot_map(pcie, riser, cards)
        error = findings.critical_errors[0]
        assert error.type == "pcie_slot_overcommitted"
        assert error.details["deficit"] == 1

    def test_unresolved_card_still_occupies_slot(self):
        known = [_card("nic-1", "x8", "pcie_x8_slot_1")]
        ghost = ComponentRef(type="nic", uuid="nic-ghost", slot_position="pcie_x8_slot_1")
        snapshot = ConfigurationSnapshot.from_refs("cfg-1", [known[0].ref, ghost])
        board = _board({"x8": 1})
        findings = validate_slot_map(
            SlotTracker.for_pcie(board, snapshot), SlotTracker.for_riser(board, snapshot), known, [ghost]
        )
        assert [f.type for f in findings.critical_errors] == ["slot_double_booked"]
