"""
Known Naga models and their hardware differences.

Product id decides the sensor generation and whether the thumb-grid LED
exists.  Unknown product ids are driven like the classic Naga.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from .constants import (
    NAGA_PID_2012,
    NAGA_PID_2014,
    NAGA_PID_CLASSIC,
    NAGA_PID_EPIC,
    NAGA_PID_HEX,
    NAGA_PID_HEX_V2,
)
from .resolution import SensorGeneration


def fw_version(major: int, minor: int) -> int:
    """Pack a firmware version the way the device reports it."""
    return ((major & 0xFF) << 8) | (minor & 0xFF)


def fw_major(version: int) -> int:
    return (version >> 8) & 0xFF


def fw_minor(version: int) -> int:
    return version & 0xFF


@dataclass(frozen=True)
class NagaModel:
    """Registry entry for one Naga product.

    Attributes:
        pid: USB product id.
        name: Marketing name.
        generation: Resolution encoding variant.
        has_thumb_grid: Whether the thumb-grid LED is present.
        min_good_fw: Oldest firmware without known bugs (0 = none known).
    """
    pid: int
    name: str
    generation: SensorGeneration = SensorGeneration.LEGACY
    has_thumb_grid: bool = False
    min_good_fw: int = 0


KNOWN_MODELS: Dict[int, NagaModel] = {
    NAGA_PID_CLASSIC: NagaModel(NAGA_PID_CLASSIC, "Naga"),
    # Epic firmware before 1.04 drops settings
    NAGA_PID_EPIC: NagaModel(NAGA_PID_EPIC, "Naga Epic", min_good_fw=fw_version(1, 4)),
    NAGA_PID_2012: NagaModel(NAGA_PID_2012, "Naga 2012"),
    NAGA_PID_HEX: NagaModel(NAGA_PID_HEX, "Naga Hex"),
    NAGA_PID_HEX_V2: NagaModel(NAGA_PID_HEX_V2, "Naga Hex v2"),
    NAGA_PID_2014: NagaModel(
        NAGA_PID_2014, "Naga 2014",
        generation=SensorGeneration.EXTENDED, has_thumb_grid=True,
    ),
}


def model_for_pid(pid: int) -> NagaModel:
    """Look up a model, falling back to the classic Naga."""
    model = KNOWN_MODELS.get(pid)
    if model is None:
        return NagaModel(pid, "Naga")
    return model
