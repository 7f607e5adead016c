"""Tests for chassis and caddy addition rules."""

from __future__ import annotations

from rackfit.engine.caddy import validate_caddy
from rackfit.engine.chassis import validate_chassis
from rackfit.engine.context import ValidationContext
from rackfit.models import (
    Backplane,
    BayGroup,
    CaddySpec,
    ChassisSpec,
    ComponentRef,
    ConfigurationSnapshot,
    DriveBays,
    VerdictStatus,
)
from rackfit.settings import EngineSettings
from rackfit.specs.lookup import InMemorySpecificationLookup
from rackfit.specs.normalize import normalize_spec


SETTINGS = EngineSettings()


def _ctx(records: dict, *refs: ComponentRef) -> ValidationContext:
    lookup = InMemorySpecificationLookup(records, settings=SETTINGS)
    return ValidationContext(ConfigurationSnapshot.from_refs("cfg-1", refs), lookup, SETTINGS)


def _ref(component_type: str, uuid: str, **kw) -> ComponentRef:
    return ComponentRef(type=component_type, uuid=uuid, **kw)


def _chassis(bays: dict, total: int | None = None, **backplane) -> ChassisSpec:
    groups = [BayGroup(bay_type=size, count=n) for size, n in bays.items()]
    return ChassisSpec(
        uuid="ch-new",
        drive_bays=DriveBays(total=total if total is not None else sum(bays.values()), bay_configuration=groups),
        backplane=Backplane(**{"supports_sata": True, **backplane}),
        form_factor_support=["ATX", "E-ATX"],
    )


def _drives(n: int, **raw) -> tuple:
    records = [{"uuid": f"ssd-{i}", "interface": "SATA III", "form_factor": "2.5-inch", **raw} for i in range(n)]
    return records, [_ref("storage", r["uuid"]) for r in records]


# ──────────────────────────────────────────────
# Chassis
# ──────────────────────────────────────────────


class TestChassisGuard:
    def test_second_chassis_blocked(self):
        ctx = _ctx({"chassis": [{"uuid": "ch-1"}]}, _ref("chassis", "ch-1"))
        verdict = validate_chassis(ctx, _chassis({"2.5-inch": 8})).verdict()
        assert verdict.finding_types() == ["chassis_already_exists"]


class TestInstalledStorage:
    def test_all_drives_fit(self):
        records, refs = _drives(4)
        verdict = validate_chassis(_ctx({"storage": records}, *refs), _chassis({"2.5-inch": 8})).verdict()
        assert verdict.status == VerdictStatus.ALLOWED

    def test_more_drives_than_bays(self):
        records, refs = _drives(3)
        findings = validate_chassis(_ctx({"storage": records}, *refs), _chassis({"2.5-inch": 2}))
        error = findings.critical_errors[0]
        assert error.type == "storage_count_exceeds_bays"
        assert error.details["deficit"] == 1

    def test_m2_drives_still_count_against_bays(self):
        records, refs = _drives(2, interface="NVMe PCIe 4.0", form_factor="M.2 2280")
        findings = validate_chassis(_ctx({"storage": records}, *refs), _chassis({"2.5-inch": 1}))
        assert [f.type for f in findings.critical_errors] == ["storage_count_exceeds_bays"]
        assert findings.critical_errors[0].details["installed_drives"] == 2
        assert findings.critical_errors[0].details["deficit"] == 1

    def test_large_drive_in_small_bays(self):
        records, refs = _drives(1, form_factor="3.5-inch")
        findings = validate_chassis(_ctx({"storage": records}, *refs), _chassis({"2.5-inch": 8}))
        assert [f.type for f in findings.critical_errors] == ["existing_storage_incompatible"]

    def test_small_drive_needs_caddy(self):
        records, refs = _drives(1)
        findings = validate_chassis(_ctx({"storage": records}, *refs), _chassis({"3.5-inch": 12}))
        error = findings.critical_errors[0]
        assert error.type == "existing_storage_needs_caddy"
        assert error.details["caddy_type"] == "2.5-inch to 3.5-inch"

    def test_caddy_present(self):
        records, refs = _drives(1)
        ctx = _ctx(
            {"storage": records, "caddy": [{"uuid": "caddy-1", "form_factor": '2.5"'}]},
            *refs,
            _ref("caddy", "caddy-1"),
        )
        assert not validate_chassis(ctx, _chassis({"3.5-inch": 12})).blocked

    def test_adapter_caddy_covers_small_drive(self):
        records, refs = _drives(1)
        ctx = _ctx(
            {"storage": records, "caddy": [{"uuid": "caddy-1", "form_factor": '2.5" to 3.5" adapter'}]},
            *refs,
            _ref("caddy", "caddy-1"),
        )
        findings = validate_chassis(ctx, _chassis({"3.5-inch": 12}))
        assert not findings.blocked
        assert not any(f.type == "existing_storage_needs_caddy" for f in findings.critical_errors)

    def test_backplane_protocol(self):
        records, refs = _drives(1, interface="SAS 12Gb/s")
        findings = validate_chassis(_ctx({"storage": records}, *refs), _chassis({"2.5-inch": 8}))
        error = findings.critical_errors[0]
        assert error.type == "existing_storage_interface_incompatible"
        assert error.details["protocol"] == "sas"

    def test_nvme_without_nvme_backplane_warns(self):
        records, refs = _drives(1, interface="NVMe PCIe 4.0", form_factor="U.2")
        verdict = validate_chassis(_ctx({"storage": records}, *refs), _chassis({"2.5-inch": 8})).verdict()
        assert verdict.status == VerdictStatus.ALLOWED_WITH_WARNINGS
        assert verdict.find("existing_storage_needs_adapter") is not None


class TestMotherboardFit:
    def test_unlisted_board_warns(self):
        ctx = _ctx({"motherboard": [{"uuid": "mb-1", "form_factor": "Mini-ITX"}]}, _ref("motherboard", "mb-1"))
        verdict = validate_chassis(ctx, _chassis({"2.5-inch": 8})).verdict()
        assert verdict.status == VerdictStatus.ALLOWED_WITH_WARNINGS
        assert verdict.find("motherboard_form_factor_warning").details["motherboard_uuid"] == "mb-1"


# ──────────────────────────────────────────────
# Caddy
# ──────────────────────────────────────────────


class TestCaddy:
    def test_matching_storage(self):
        records, refs = _drives(2)
        verdict = validate_caddy(_ctx({"storage": records}, *refs), CaddySpec(uuid="caddy-1", form_factor="2.5-inch")).verdict()
        assert verdict.status == VerdictStatus.ALLOWED
        assert verdict.find("caddy_compatible_storage").details["storage_uuids"] == ["ssd-0", "ssd-1"]

    def test_no_matching_storage_never_blocks(self):
        records, refs = _drives(1, form_factor="3.5-inch")
        verdict = validate_caddy(_ctx({"storage": records}, *refs), CaddySpec(uuid="caddy-1", form_factor="2.5-inch")).verdict()
        assert verdict.status == VerdictStatus.ALLOWED_WITH_WARNINGS
        assert verdict.find("caddy_no_matching_storage") is not None
        assert verdict.find("caddy_added_proactively") is None

    def test_added_before_storage(self):
        verdict = validate_caddy(_ctx({}), CaddySpec(uuid="caddy-1", form_factor="2.5-inch")).verdict()
        assert not verdict.is_blocked
        assert verdict.find("caddy_added_proactively") is not None

    def test_adapter_label_matches_small_drives(self):
        records, refs = _drives(1)
        caddy = normalize_spec("caddy", {"uuid": "caddy-1", "form_factor": '2.5" to 3.5" adapter'}, SETTINGS)
        verdict = validate_caddy(_ctx({"storage": records}, *refs), caddy).verdict()
        assert verdict.status == VerdictStatus.ALLOWED
        assert verdict.find("caddy_compatible_storage").details["storage_uuids"] == ["ssd-0"]
