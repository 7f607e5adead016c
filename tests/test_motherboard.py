"""Tests for motherboard addition rules (mostly reverse checks)."""

from __future__ import annotations

from rackfit.engine.context import ValidationContext
from rackfit.engine.motherboard import form_factor_supported, validate_motherboard
from rackfit.models import (
    ChassisSpec,
    ComponentRef,
    ConfigurationSnapshot,
    MotherboardSpec,
    Severity,
    SlotGroup,
    VerdictStatus,
)
from rackfit.settings import EngineSettings
from rackfit.specs.lookup import InMemorySpecificationLookup


SETTINGS = EngineSettings()


def _ctx(records: dict, *refs: ComponentRef) -> ValidationContext:
    lookup = InMemorySpecificationLookup(records, settings=SETTINGS)
    return ValidationContext(ConfigurationSnapshot.from_refs("cfg-1", refs), lookup, SETTINGS)


def _ref(component_type: str, uuid: str, **kw) -> ComponentRef:
    return ComponentRef(type=component_type, uuid=uuid, **kw)


def _board(**kw) -> MotherboardSpec:
    defaults = dict(
        uuid="mb-new",
        socket="LGA4189",
        max_cpus=2,
        memory_types=["DDR4"],
        memory_slots=4,
        max_memory_capacity=256,
        max_memory_frequency=3200,
        pcie_version=4.0,
        pcie_slots=[SlotGroup(size="x16", count=2), SlotGroup(size="x8", count=2)],
    )
    defaults.update(kw)
    return MotherboardSpec(**defaults)


def _rams(n: int, **raw) -> tuple:
    records = [{"uuid": f"ram-{i}", "memory_type": "DDR4", "capacity": 32, **raw} for i in range(n)]
    refs = [_ref("ram", r["uuid"]) for r in records]
    return records, refs


# ──────────────────────────────────────────────
# Guard
# ──────────────────────────────────────────────


class TestSingleInstance:
    def test_second_motherboard_blocked(self):
        ctx = _ctx({"motherboard": [{"uuid": "mb-1"}]}, _ref("motherboard", "mb-1"))
        verdict = validate_motherboard(ctx, _board()).verdict()
        assert verdict.is_blocked
        assert verdict.finding_types() == ["motherboard_already_exists"]

    def test_empty_configuration(self):
        verdict = validate_motherboard(_ctx({}), _board()).verdict()
        assert verdict.status == VerdictStatus.ALLOWED
        assert verdict.finding_types() == ["motherboard_specifications"]


# ──────────────────────────────────────────────
# Installed CPUs
# ──────────────────────────────────────────────


class TestCpus:
    def test_too_many_cpus(self):
        ctx = _ctx(
            {"cpu": [{"uuid": "cpu-1", "socket": "LGA4189"}, {"uuid": "cpu-2", "socket": "LGA4189"}]},
            _ref("cpu", "cpu-1"),
            _ref("cpu", "cpu-2"),
        )
        findings = validate_motherboard(ctx, _board(max_cpus=1))
        error = findings.critical_errors[0]
        assert error.type == "cpu_count_exceeded"
        assert error.details["overflow"] == 1

    def test_newer_cpu_pcie_warns(self):
        ctx = _ctx({"cpu": [{"uuid": "cpu-1", "socket": "LGA4189", "pcie_version": 5}]}, _ref("cpu", "cpu-1"))
        verdict = validate_motherboard(ctx, _board()).verdict()
        assert verdict.status == VerdictStatus.ALLOWED_WITH_WARNINGS
        assert verdict.find("cpu_pcie_version_higher").details["performance_loss_pct"] == 20.0


# ──────────────────────────────────────────────
# Installed RAM
# ──────────────────────────────────────────────


class TestMemory:
    def test_type_not_supported(self):
        records, refs = _rams(2, memory_type="DDR5")
        findings = validate_motherboard(_ctx({"ram": records}, *refs), _board())
        assert [f.type for f in findings.critical_errors] == ["ram_type_incompatible"]

    def test_form_factor_mismatch_per_module(self):
        records, refs = _rams(2, form_factor="SO-DIMM")
        findings = validate_motherboard(_ctx({"ram": records}, *refs), _board(memory_form_factor="DIMM"))
        assert [f.type for f in findings.critical_errors] == ["ram_form_factor_mismatch"] * 2

    def test_per_slot_capacity(self):
        records, refs = _rams(1, capacity=128)
        findings = validate_motherboard(_ctx({"ram": records}, *refs), _board(per_slot_capacity=64))
        error = findings.critical_errors[0]
        assert error.type == "ram_per_slot_capacity_exceeded"
        assert error.details["ram_uuid"] == "ram-0"

    def test_slot_overflow_reports_delta(self):
        records, refs = _rams(6, capacity=8)
        findings = validate_motherboard(_ctx({"ram": records}, *refs), _board())
        error = findings.critical_errors[0]
        assert error.type == "ram_slot_count_exceeded"
        assert error.details["deficit"] == 2

    def test_total_capacity(self):
        records, refs = _rams(4, capacity=64)
        findings = validate_motherboard(_ctx({"ram": records}, *refs), _board(max_memory_capacity=128))
        error = findings.critical_errors[0]
        assert error.type == "ram_total_capacity_exceeded"
        assert error.details["excess_gb"] == 128

    def test_frequency_cascade_warns(self):
        records, refs = _rams(2, frequency=3200)
        findings = validate_motherboard(_ctx({"ram": records}, *refs), _board(max_memory_frequency=2933))
        assert not findings.blocked
        warning = findings.warnings[0]
        assert warning.type == "ram_frequency_downgrade"
        assert warning.details["effective_frequency_mhz"] == 2933

    def test_frequency_includes_cpu_limit(self):
        records, refs = _rams(1, frequency=3200)
        records_cpu = [{"uuid": "cpu-1", "socket": "LGA4189", "max_memory_frequency": 2666}]
        ctx = _ctx({"ram": records, "cpu": records_cpu}, *refs, _ref("cpu", "cpu-1"))
        findings = validate_motherboard(ctx, _board(max_memory_frequency=2933))
        assert findings.warnings[0].details["effective_frequency_mhz"] == 2666


# ──────────────────────────────────────────────
# Installed expansion cards
# ──────────────────────────────────────────────


class TestExpansionCards:
    def test_more_cards_than_slots(self):
        cards = [{"uuid": f"nic-{i}", "slot_size": "x8"} for i in range(3)]
        ctx = _ctx({"nic": cards}, *[_ref("nic", c["uuid"]) for c in cards])
        findings = validate_motherboard(ctx, _board(pcie_slots=[SlotGroup(size="x8", count=2)]))
        error = findings.critical_errors[0]
        assert error.type == "pcie_slot_count_exceeded"
        assert error.details["deficit"] == 1

    def test_card_too_wide_for_board(self):
        ctx = _ctx({"pciecard": [{"uuid": "gpu-1", "slot_size": "x16"}]}, _ref("pciecard", "gpu-1"))
        findings = validate_motherboard(ctx, _board(pcie_slots=[SlotGroup(size="x8", count=4)]))
        error = findings.critical_errors[0]
        assert error.type == "pcie_slot_size_incompatible"
        assert error.details["available_sizes"] == ["x8"]

    def test_risers_need_riser_slots(self):
        ctx = _ctx(
            {"pciecard": [{"uuid": "riser-1", "subtype": "Riser Card", "slot_size": "x16"}]},
            _ref("pciecard", "riser-1"),
        )
        findings = validate_motherboard(ctx, _board())
        assert [f.type for f in findings.critical_errors] == ["riser_slot_count_exceeded"]

    def test_card_version_warns(self):
        ctx = _ctx({"nic": [{"uuid": "nic-1", "interface": "PCIe 5.0 x8"}]}, _ref("nic", "nic-1"))
        verdict = validate_motherboard(ctx, _board()).verdict()
        assert verdict.status == VerdictStatus.ALLOWED_WITH_WARNINGS
        assert verdict.find("pcie_version_mismatch").details["card_uuid"] == "nic-1"


# ──────────────────────────────────────────────
# Installed chassis (advisory)
# ──────────────────────────────────────────────


class TestChassisFit:
    def test_unlisted_form_factor_only_warns(self):
        ctx = _ctx(
            {"chassis": [{"uuid": "ch-1", "form_factor_support": ["ATX", "E-ATX"]}]},
            _ref("chassis", "ch-1"),
        )
        verdict = validate_motherboard(ctx, _board(form_factor="SSI-EEB")).verdict()
        assert verdict.status == VerdictStatus.ALLOWED_WITH_WARNINGS
        warning = verdict.find("chassis_form_factor_warning")
        assert warning.severity == Severity.LOW

    def test_form_factor_case_insensitive(self):
        chassis = ChassisSpec(uuid="ch-1", form_factor_support=["E-ATX"])
        assert form_factor_supported("e-atx", chassis)
