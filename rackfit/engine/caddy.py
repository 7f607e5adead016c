"""Caddy addition rules. Caddies never block."""

from __future__ import annotations

from rackfit.engine.context import ValidationContext
from rackfit.engine.findings import FindingCollector
from rackfit.models.components import CaddySpec
from rackfit.models.verdict import Severity


def validate_caddy(ctx: ValidationContext, caddy: CaddySpec) -> FindingCollector:
    findings = FindingCollector()
    storage = ctx.storages()
    matching = [s.uuid for s in storage if s.spec.bay_size == caddy.form_factor]

    if matching:
        findings.note(
            "caddy_compatible_storage",
            f"Caddy fits {len(matching)} installed {caddy.form_factor} drive(s)",
            storage_uuids=matching,
        )
    else:
        findings.warn(
            "caddy_no_matching_storage",
            f"No installed {caddy.form_factor} storage uses this caddy yet",
            f"Add {caddy.form_factor} storage later to use it",
            severity=Severity.LOW,
            caddy_form_factor=caddy.form_factor,
        )
        if not storage:
            findings.note(
                "caddy_added_proactively",
                "Caddy added before any storage; it will be matched when drives are added",
            )

    findings.note(
        "caddy_specifications",
        f"Caddy {caddy.model or caddy.uuid}",
        form_factor=caddy.form_factor,
        bay_type=caddy.bay_type,
    )
    return findings
