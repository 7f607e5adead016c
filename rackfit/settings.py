"""Engine settings read from ``RACKFIT_*`` environment variables."""

from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import BaseModel, Field


# ──────────────────────────────────────────────
# Defaults (overridable via environment)
# ──────────────────────────────────────────────

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MEMORY_SLOTS = 4
DEFAULT_MAX_CPUS = 1
DEFAULT_STORAGE_LANES = 4  # U.2 / add-in NVMe drives run at x4
DEFAULT_CARD_SLOT = "x16"  # Cards that do not declare a slot size

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class EngineSettings(BaseModel):
    """Tunable defaults used when specification data is incomplete."""

    log_level: str = DEFAULT_LOG_LEVEL
    default_memory_slots: int = Field(default=DEFAULT_MEMORY_SLOTS, ge=1)
    default_max_cpus: int = Field(default=DEFAULT_MAX_CPUS, ge=1)
    storage_lanes: int = Field(default=DEFAULT_STORAGE_LANES, ge=1)
    default_card_slot: str = DEFAULT_CARD_SLOT

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            log_level=os.getenv("RACKFIT_LOG_LEVEL", DEFAULT_LOG_LEVEL),
            default_memory_slots=int(
                os.getenv("RACKFIT_DEFAULT_MEMORY_SLOTS", str(DEFAULT_MEMORY_SLOTS))
            ),
            default_max_cpus=int(
                os.getenv("RACKFIT_DEFAULT_MAX_CPUS", str(DEFAULT_MAX_CPUS))
            ),
            storage_lanes=int(
                os.getenv("RACKFIT_STORAGE_LANES", str(DEFAULT_STORAGE_LANES))
            ),
            default_card_slot=os.getenv("RACKFIT_PCIE_DEFAULT_SLOT", DEFAULT_CARD_SLOT),
        )


_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    """Return the process-wide settings, reading the environment once."""
    global _settings
    if _settings is None:
        _settings = EngineSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a stream handler to the ``rackfit`` logger tree.

    Intended for applications embedding the engine; the library itself
    never configures the root logger.
    """
    logger = logging.getLogger("rackfit")
    logger.setLevel((level or get_settings().log_level).upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
