"""Exception types raised at the data boundaries of the engine.

Constraint violations are never raised; they are reported as findings.
Exceptions are reserved for data that cannot be interpreted at all.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RackfitError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SpecificationError(RackfitError):
    """A component specification record is malformed or missing required fields."""

    def __init__(
        self,
        component_type: str,
        uuid: str,
        reason: str,
    ) -> None:
        super().__init__(
            f"Invalid {component_type} specification {uuid}: {reason}",
            {"component_type": component_type, "uuid": uuid, "reason": reason},
        )
        self.component_type = component_type
        self.uuid = uuid
        self.reason = reason


class SnapshotError(RackfitError):
    """A snapshot does not belong to the configuration it was requested for."""
