"""Storage connection resolver.

A drive can attach through a chassis bay, a motherboard port, an HBA
card or a PCIe adapter card. The resolver finds every available path,
picks the one with the lowest priority value and then checks the
resources that path consumes:

    1. chassis bay (backplane supports the protocol)       priority 1
    2. motherboard port (SATA / M.2 / U.2)                  priority 2
    3. HBA card (mandatory for SAS)                         priority 3
    4. NVMe PCIe adapter (M.2 drives)                       priority 4
    5. bay headroom and bay size on the chassis path
    6. port / slot headroom on the chosen path
    7. PCIe lane budget (U.2 and add-in NVMe only)
    8. PCIe version between drive and slot
    9. bifurcation for multi-drive adapters
   10. caddy for 2.5-inch drives in 3.5-inch bays

Storage without any path is allowed with recommendations, except SAS,
which cannot work without an HBA or SAS chassis.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from rackfit.engine.capacity import BayTracker
from rackfit.engine.chassis import caddy_for
from rackfit.engine.context import ValidationContext
from rackfit.engine.findings import FindingCollector, performance_impact
from rackfit.models.components import M2SlotGroup, StorageProtocol, StorageSpec
from rackfit.models.verdict import (
    PATH_PRIORITY,
    ConnectionPath,
    ConnectionPathType,
    Recommendation,
    Severity,
    StorageResolution,
)

logger = logging.getLogger(__name__)


def _m2_slot_accepts(group: M2SlotGroup, form_factor: str) -> bool:
    if group.count <= 0:
        return False
    return not group.form_factors or form_factor in group.form_factors or form_factor == "m.2"


def _path(path_type: ConnectionPathType, description: str, **details) -> ConnectionPath:
    return ConnectionPath(
        type=path_type,
        priority=PATH_PRIORITY[path_type],
        description=description,
        details=details,
    )


class StorageConnectionResolver:
    """Finds and checks the connection paths of one drive in one snapshot."""

    def __init__(self, ctx: ValidationContext) -> None:
        self.ctx = ctx
        self.settings = ctx.settings
        self.mobo = ctx.motherboard()
        self.chassis = ctx.chassis()
        self.cards = ctx.pcie_devices()
        self.storage = ctx.storages()
        self.caddies = ctx.caddies()
        self.cpus = ctx.cpus()

    # ──────────────────────────────────────────
    # Checks 1-4: available paths
    # ──────────────────────────────────────────

    def chassis_path(self, drive: StorageSpec) -> Optional[ConnectionPath]:
        """CHECK 1: bay-mountable drive and a backplane speaking its protocol."""
        if self.chassis is None or drive.bay_size is None:
            return None
        if not self.chassis.spec.backplane.supports(drive.protocol):
            return None
        return _path(
            ConnectionPathType.CHASSIS_BAY,
            f"Drive mounts in a chassis bay on the {drive.protocol.value.upper()} backplane",
            chassis_uuid=self.chassis.uuid,
            protocol=drive.protocol.value,
            bay_size=drive.bay_size,
        )

    def motherboard_path(self, drive: StorageSpec) -> Optional[ConnectionPath]:
        """CHECK 2: a native motherboard port for the drive's form factor."""
        if self.mobo is None:
            return None
        ports = self.mobo.spec.storage_ports
        kind = ConnectionPathType.MOTHERBOARD_DIRECT

        if drive.is_m2:
            groups = [g for g in ports.m2 if _m2_slot_accepts(g, drive.normalized_form_factor)]
            if not groups:
                return None
            generations = [g.pcie_generation for g in groups if g.pcie_generation is not None]
            return _path(
                kind,
                "Drive connects to a motherboard M.2 slot",
                port="m2",
                total=sum(g.count for g in groups),
                pcie_generation=max(generations) if generations else None,
            )
        if drive.is_u2:
            if ports.u2 <= 0:
                return None
            return _path(kind, "Drive connects to a motherboard U.2 port", port="u2", total=ports.u2)
        if drive.protocol is StorageProtocol.SATA and ports.sata > 0:
            return _path(kind, "Drive connects to a motherboard SATA port", port="sata", total=ports.sata)
        if drive.protocol is StorageProtocol.SAS and ports.sas > 0:
            return _path(kind, "Drive connects to an onboard SAS port", port="sas", total=ports.sas)
        return None

    def hba_path(self, drive: StorageSpec, findings: FindingCollector) -> Optional[ConnectionPath]:
        """CHECK 3: HBA card; its absence blocks SAS drives outright."""
        hbas = [c for c in self.cards if c.spec.is_hba]

        if drive.protocol is StorageProtocol.SAS:
            for hba in hbas:
                if hba.spec.supports_protocol(StorageProtocol.SAS):
                    return _path(
                        ConnectionPathType.HBA_CARD,
                        f"Drive connects via HBA card ({hba.spec.model or hba.uuid})",
                        hba_uuid=hba.uuid,
                        hba_model=hba.spec.model,
                        internal_ports=hba.spec.internal_ports,
                        max_devices=hba.spec.max_devices,
                    )
            findings.block(
                "hba_required",
                "SAS storage requires SAS HBA card",
                "Add SAS HBA card (e.g., LSI 9400-16i) before adding SAS storage",
            )
            return None

        if drive.protocol is StorageProtocol.SATA and hbas:
            hba = hbas[0]
            return _path(
                ConnectionPathType.HBA_CARD,
                "Drive can connect via HBA card (optional)",
                hba_uuid=hba.uuid,
                hba_model=hba.spec.model,
                max_devices=hba.spec.max_devices,
            )
        return None

    def adapter_path(self, drive: StorageSpec) -> Optional[ConnectionPath]:
        """CHECK 4: an NVMe adapter card declaring the drive's M.2 size."""
        if not drive.is_m2:
            return None
        form_factor = drive.normalized_form_factor
        for card in self.cards:
            spec = card.spec
            if not spec.is_nvme_adapter:
                continue
            if spec.m2_form_factors and form_factor not in spec.m2_form_factors and form_factor != "m.2":
                continue
            return _path(
                ConnectionPathType.PCIE_ADAPTER,
                f"Drive connects via PCIe M.2 adapter card ({spec.model or card.uuid})",
                adapter_uuid=card.uuid,
                adapter_model=spec.model,
                m2_slots=spec.m2_slots,
                supported_form_factors=spec.m2_form_factors,
                requires_bifurcation=spec.m2_slots > 1,
                pcie_version=spec.pcie_version,
            )
        return None

    # ──────────────────────────────────────────
    # Checks 5-10: resources of the chosen path
    # ──────────────────────────────────────────

    def check_bays(self, drive: StorageSpec, findings: FindingCollector) -> None:
        """CHECK 5 (with CHECK 10 for caddies)."""
        bays = BayTracker(self.chassis.spec, self.storage)
        if bays.total is not None and bays.used >= bays.total:
            findings.block(
                "bay_limit_exceeded",
                f"Chassis has {bays.total} drive bays, all occupied ({bays.used} used)",
                "Remove existing storage or choose a chassis with more bays",
                used_bays=bays.used,
                total_bays=bays.total,
            )
            return

        fits, needs_caddy = bays.fit(drive.bay_size)
        if not fits:
            findings.block(
                "form_factor_incompatible",
                f"Storage form factor {drive.form_factor} not compatible with chassis bay types",
                "Choose compatible storage or replace the chassis",
                storage_form_factor=drive.bay_size,
                bay_types=bays.bay_types,
            )
            return

        if needs_caddy:
            if caddy_for(drive, self.caddies):
                findings.note(
                    "caddy_available",
                    "Using 2.5-inch caddy for 3.5-inch bay installation",
                )
            else:
                findings.warn(
                    "caddy_recommended",
                    "2.5-inch storage in 3.5-inch bay requires caddy adapter",
                    "Add 2.5-inch to 3.5-inch caddy for proper installation",
                    caddy_type="2.5-inch to 3.5-inch",
                )

    def check_ports(self, drive: StorageSpec, path: ConnectionPath, findings: FindingCollector) -> None:
        """CHECK 6: headroom on the specific port pool of the chosen path."""
        existing = [s.spec for s in self.storage]

        if path.type is ConnectionPathType.MOTHERBOARD_DIRECT:
            port = path.details["port"]
            total = path.details["total"]
            if port == "m2":
                used = sum(1 for s in existing if s.is_m2)
            elif port == "u2":
                used = sum(1 for s in existing if s.is_u2)
            else:
                wanted = StorageProtocol(port)
                used = sum(1 for s in existing if s.protocol is wanted and not s.is_m2)
            if used >= total:
                labels = {"sata": "SATA ports", "sas": "SAS ports", "m2": "M.2 slots", "u2": "U.2 ports"}
                resolutions = {
                    "sata": "Add SATA HBA card or use NVMe storage",
                    "sas": "Add SAS HBA card",
                    "m2": "Add M.2 to PCIe adapter card",
                    "u2": "Add U.2 to PCIe adapter card",
                }
                findings.block(
                    f"{port}_ports_exhausted" if port != "m2" else "m2_slots_exhausted",
                    f"Motherboard {labels[port]} exhausted ({total} total, {used} used)",
                    resolutions[port],
                    used=used,
                    total=total,
                )

        elif path.type is ConnectionPathType.HBA_CARD:
            max_devices = path.details.get("max_devices")
            if not max_devices:
                return
            used = sum(
                1 for s in existing
                if s.protocol in (StorageProtocol.SAS, StorageProtocol.SATA) and not s.is_m2
            )
            if used >= max_devices:
                findings.block(
                    "hba_ports_exhausted",
                    f"HBA card device limit reached ({max_devices} max, {used} used)",
                    "Add another HBA card",
                    used=used,
                    total=max_devices,
                )

    def check_lanes(self, drive: StorageSpec, findings: FindingCollector) -> None:
        """CHECK 7: U.2 / add-in NVMe against CPU plus chipset lanes.

        M.2 slots have dedicated lanes and are skipped. Lane routing is
        rarely documented exactly, so a shortfall only warns.
        """
        if drive.is_m2:
            return
        total = self.ctx.cpu_lanes() or 0
        if self.mobo is not None:
            total += self.mobo.spec.chipset_pcie_lanes
        used = sum(c.spec.lanes for c in self.cards if not c.spec.is_riser)
        used += sum(
            s.spec.pcie_lanes or self.settings.storage_lanes
            for s in self.storage
            if s.spec.protocol is StorageProtocol.NVME and not s.spec.is_m2
        )
        required = drive.pcie_lanes or self.settings.storage_lanes
        available = total - used
        if available < required:
            findings.warn(
                "pcie_lanes_insufficient",
                f"Insufficient PCIe expansion lanes (need {required}, available {available}/{total})",
                "Remove other PCIe devices or upgrade CPU/motherboard",
                required_lanes=required,
                available_lanes=available,
                total_lanes=total,
            )

    def slot_version(self, path: ConnectionPath) -> Optional[float]:
        if path.type is ConnectionPathType.MOTHERBOARD_DIRECT and path.details.get("port") == "m2":
            return path.details.get("pcie_generation")
        if path.type is ConnectionPathType.PCIE_ADAPTER and path.details.get("pcie_version"):
            return path.details["pcie_version"]
        return self.mobo.spec.pcie_version if self.mobo is not None else None

    def check_version(self, drive: StorageSpec, path: ConnectionPath, findings: FindingCollector) -> None:
        """CHECK 8: a faster drive on a slower link warns with the bandwidth loss."""
        slot = self.slot_version(path)
        if drive.pcie_version is None or slot is None:
            return
        if drive.pcie_version > slot:
            findings.warn(
                "pcie_version_mismatch",
                f"PCIe version mismatch: storage PCIe {drive.pcie_version} on slot PCIe {slot}",
                f"Use a PCIe {drive.pcie_version} slot for full performance",
                storage_pcie_version=drive.pcie_version,
                slot_pcie_version=slot,
                **performance_impact(slot, drive.pcie_version, "bandwidth"),
            )

    def check_bifurcation(self, path: ConnectionPath, findings: FindingCollector) -> None:
        """CHECK 9: multi-drive adapters need a board that can split the slot."""
        if not path.details.get("requires_bifurcation") or self.mobo is None:
            return
        if not self.mobo.spec.bifurcation_support:
            findings.block(
                "bifurcation_not_supported",
                "Multi-slot M.2 adapter requires PCIe bifurcation (motherboard unsupported)",
                "Replace motherboard with bifurcation support or use single-slot M.2 adapter",
                adapter_uuid=path.details.get("adapter_uuid"),
                motherboard_uuid=self.mobo.uuid,
            )
        else:
            findings.warn(
                "bifurcation_required",
                "Requires BIOS bifurcation configuration for multi-slot M.2 adapter",
                "Enable PCIe bifurcation in BIOS settings",
                severity=Severity.LOW,
                adapter_uuid=path.details.get("adapter_uuid"),
            )

    # ──────────────────────────────────────────
    # Recommendations
    # ──────────────────────────────────────────

    def recommendations(self, drive: StorageSpec) -> List[Recommendation]:
        """Components that would give the drive a connection path, best first."""
        has_chassis = self.ctx.snapshot.chassis is not None
        has_mobo = self.ctx.snapshot.motherboard is not None
        recs: List[Recommendation] = []

        if drive.protocol is StorageProtocol.SAS:
            if not has_chassis:
                recs.append(Recommendation(
                    priority=1, component="Chassis with SAS backplane",
                    reason="Provides hot-swap SAS storage bays",
                    example="Supermicro SC846 with SAS3 backplane",
                ))
            recs.append(Recommendation(
                priority=2, component="SAS HBA Card",
                reason="Required controller for SAS storage",
                example="LSI 9400-16i or 9400-8i",
            ))
        elif drive.protocol is StorageProtocol.SATA:
            if not has_chassis:
                recs.append(Recommendation(
                    priority=1, component="Chassis with SATA backplane",
                    reason="Provides hot-swap SATA storage bays",
                ))
            if not has_mobo:
                recs.append(Recommendation(
                    priority=2, component="Motherboard with SATA ports",
                    reason="Direct SATA connection to motherboard",
                    example="Motherboard with 8+ SATA ports",
                ))
            recs.append(Recommendation(
                priority=3, component="SATA HBA Card",
                reason="Expands SATA port capacity",
            ))
        elif drive.protocol is StorageProtocol.NVME and drive.is_m2:
            if not has_mobo:
                recs.append(Recommendation(
                    priority=1, component="Motherboard with M.2 slots",
                    reason="Direct M.2 NVMe connection",
                ))
            recs.append(Recommendation(
                priority=2, component="M.2 to PCIe Adapter Card",
                reason="Convert M.2 drives to PCIe slot",
                example="Supermicro AOM-SNG-4M2P (Quad M.2 adapter)",
            ))
            if not has_chassis:
                recs.append(Recommendation(
                    priority=3, component="Chassis with NVMe backplane",
                    reason="Hot-swap NVMe storage bays",
                ))
        elif drive.protocol is StorageProtocol.NVME:
            if not has_chassis:
                recs.append(Recommendation(
                    priority=1, component="Chassis with NVMe/U.2 backplane",
                    reason="Hot-swap U.2/U.3 NVMe bays",
                ))
            if not has_mobo:
                recs.append(Recommendation(
                    priority=2, component="Motherboard with U.2 ports",
                    reason="Direct U.2 connection",
                ))
            recs.append(Recommendation(
                priority=3, component="U.2 to PCIe Adapter Card",
                reason="Convert U.2 drives to PCIe slot",
            ))

        return sorted(recs, key=lambda r: r.priority)

    # ──────────────────────────────────────────
    # Entry point
    # ──────────────────────────────────────────

    def resolve(self, drive: StorageSpec) -> StorageResolution:
        findings = FindingCollector()

        candidates = [
            self.chassis_path(drive),
            self.motherboard_path(drive),
            self.hba_path(drive, findings),
            self.adapter_path(drive),
        ]
        paths = [p for p in candidates if p is not None]
        primary = min(paths, key=lambda p: p.priority) if paths else None

        if primary is not None:
            if primary.type is ConnectionPathType.CHASSIS_BAY:
                self.check_bays(drive, findings)
            self.check_ports(drive, primary, findings)

        if drive.protocol is StorageProtocol.NVME:
            if self.mobo is not None or self.cpus:
                self.check_lanes(drive, findings)
            if primary is not None:
                self.check_version(drive, primary, findings)
                if primary.type is ConnectionPathType.PCIE_ADAPTER:
                    self.check_bifurcation(primary, findings)

        recommendations: List[Recommendation] = []
        if primary is None:
            recommendations = self.recommendations(drive)
            if drive.protocol is StorageProtocol.SAS:
                findings.block(
                    "sas_requires_hba_or_chassis",
                    "SAS storage requires SAS HBA card or chassis with SAS backplane",
                    "Add SAS HBA card (e.g., LSI 9400-16i) or add chassis with SAS backplane before adding SAS storage",
                    options=[r.model_dump() for r in recommendations],
                )
            else:
                findings.warn(
                    "no_connection_path_yet",
                    "Storage added but not yet connected to any component",
                    "Add one of the following to connect this storage",
                    options=[r.model_dump() for r in recommendations],
                )
                findings.note(
                    "component_order_flexible",
                    "Required components (chassis, motherboard or adapter) can be added later to connect this storage",
                )
        else:
            findings.note(
                "connection_path",
                primary.description,
                path_type=primary.type.value,
                priority=primary.priority,
                alternatives=[p.type.value for p in paths if p is not primary],
                **primary.details,
            )

        logger.debug(
            "Storage %s: %d path(s), primary %s",
            drive.uuid, len(paths), primary.type.value if primary else None,
        )
        return StorageResolution(
            connection_paths=paths,
            primary_path=primary,
            errors=findings.critical_errors,
            warnings=findings.warnings,
            info=findings.info_messages,
            recommendations=recommendations,
        )


def validate_storage(ctx: ValidationContext, drive: StorageSpec) -> FindingCollector:
    resolution = StorageConnectionResolver(ctx).resolve(drive)
    findings = FindingCollector()
    findings.critical_errors.extend(resolution.errors)
    findings.warnings.extend(resolution.warnings)
    findings.info_messages.extend(resolution.info)
    findings.note(
        "storage_specifications",
        f"Storage {drive.model or drive.uuid}",
        interface=drive.interface,
        protocol=drive.protocol.value,
        form_factor=drive.form_factor,
        pcie_version=drive.pcie_version,
    )
    return findings
