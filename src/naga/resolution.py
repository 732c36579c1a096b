"""
Sensor resolution table and per-generation resolution encoders.

Two sensor generations exist and they disagree on how the resolution-set
command carries its values:

  Legacy   (Classic/Epic/2012/Hex):  100-5600 DPI, command 0x0003/0x0401,
           one byte per axis = (DPI / 100 - 1) * 4
  Extended (Naga 2014):              100-8200 DPI, command 0x0007/0x0405,
           raw big-endian 16-bit DPI per axis in values[1..2] / values[3..4]

The encoder is picked once, when the device is set up, and never changes.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from .constants import CMD_RESOLUTION_EXTENDED, CMD_RESOLUTION_LEGACY
from .frame import encode_frame

RESOLUTION_STEP = 100
DEFAULT_RESOLUTION = 1000


class SensorGeneration(Enum):
    """Closed set of resolution encoding variants."""
    LEGACY = "legacy"
    EXTENDED = "extended"

    @property
    def nr_mappings(self) -> int:
        return 56 if self is SensorGeneration.LEGACY else 82

    @property
    def max_resolution(self) -> int:
        return self.nr_mappings * RESOLUTION_STEP


@dataclass(frozen=True)
class ResolutionMapping:
    """One entry of the resolution table.

    Attributes:
        nr: Table index.
        resolution: DPI value (multiple of 100, starting at 100).
    """
    nr: int
    resolution: int


def build_dpimappings(generation: SensorGeneration) -> Tuple[ResolutionMapping, ...]:
    """Build the resolution table for a sensor generation."""
    return tuple(
        ResolutionMapping(nr=i, resolution=(i + 1) * RESOLUTION_STEP)
        for i in range(generation.nr_mappings)
    )


@dataclass(frozen=True)
class ResolutionEncoder:
    """Encodes the resolution-set frame for one sensor generation."""
    generation: SensorGeneration

    @property
    def opcode(self) -> Tuple[int, int]:
        if self.generation is SensorGeneration.LEGACY:
            return CMD_RESOLUTION_LEGACY
        return CMD_RESOLUTION_EXTENDED

    def encode_values(self, x: ResolutionMapping, y: ResolutionMapping) -> bytes:
        """Value bytes for the X and Y table entries."""
        if self.generation is SensorGeneration.LEGACY:
            return bytes([
                ((x.resolution // RESOLUTION_STEP) - 1) * 4 & 0xFF,
                ((y.resolution // RESOLUTION_STEP) - 1) * 4 & 0xFF,
            ])
        return b'\x00' + struct.pack(">HH", x.resolution, y.resolution)

    def encode(self, x: ResolutionMapping, y: ResolutionMapping) -> bytes:
        """Build the complete resolution-set frame."""
        command, request = self.opcode
        return encode_frame(command, request, self.encode_values(x, y))


_ENCODERS = {gen: ResolutionEncoder(gen) for gen in SensorGeneration}


def encoder_for(generation: SensorGeneration) -> ResolutionEncoder:
    """Shared, immutable encoder for *generation*."""
    return _ENCODERS[generation]
