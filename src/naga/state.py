"""
Pending device configuration: frequency, LEDs and per-axis resolution.

``DeviceConfiguration`` is plain data.  Claim gating and dirty tracking
are enforced by :class:`naga.device.NagaDevice`, the only writer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import List, Optional, Tuple

from .models import NagaModel
from .resolution import (
    DEFAULT_RESOLUTION,
    ResolutionEncoder,
    ResolutionMapping,
    build_dpimappings,
    encoder_for,
)


class Frequency(IntEnum):
    """Scan (polling) frequency in Hz."""
    UNKNOWN = 0
    HZ_125 = 125
    HZ_500 = 500
    HZ_1000 = 1000


SUPPORTED_FREQUENCIES = (Frequency.HZ_125, Frequency.HZ_500, Frequency.HZ_1000)


class LedState(IntEnum):
    """LED state.  UNSUPPORTED marks an LED this model does not have."""
    UNSUPPORTED = -1
    OFF = 0
    ON = 1


# =========================================================================
# LEDs
# =========================================================================

LED_SCROLL = 0
LED_LOGO = 1
LED_THUMB_GRID = 2


@dataclass
class Led:
    """One LED.

    Attributes:
        id: Stable LED id (index into the LED table).
        name: Display name.
        selector: Two bytes identifying the LED in the LED-set command.
        state: Current state.
    """
    id: int
    name: str
    selector: bytes
    state: LedState = LedState.UNSUPPORTED


# (name, selector) in id order
LED_TABLE: Tuple[Tuple[str, bytes], ...] = (
    ("Scrollwheel", b'\x01\x01'),
    ("GlowingLogo", b'\x01\x04'),
    ("ThumbGrid", b'\x01\x05'),
)

NR_LEDS = len(LED_TABLE)


def default_leds(has_thumb_grid: bool) -> List[Led]:
    """Scroll wheel and logo on; thumb grid on only where it exists."""
    leds = [Led(i, name, selector, LedState.ON)
            for i, (name, selector) in enumerate(LED_TABLE)]
    if not has_thumb_grid:
        leds[LED_THUMB_GRID].state = LedState.UNSUPPORTED
    return leds


# =========================================================================
# Axes
# =========================================================================

AXIS_X = 0
AXIS_Y = 1
AXIS_SCROLL = 2


@dataclass(frozen=True)
class Axis:
    id: int
    name: str
    independent_dpimapping: bool = False


AXES: Tuple[Axis, ...] = (
    Axis(AXIS_X, "X", independent_dpimapping=True),
    Axis(AXIS_Y, "Y", independent_dpimapping=True),
    Axis(AXIS_SCROLL, "Scroll"),
)


# =========================================================================
# Configuration
# =========================================================================

@dataclass(frozen=True)
class ConfigSnapshot:
    """Immutable copy of everything a commit would push, plus dirtiness."""
    frequency: int
    led_states: Tuple[int, ...]
    resolution_x: int
    resolution_y: int
    dirty: bool


@dataclass
class DeviceConfiguration:
    """Configuration held in memory until the next commit."""
    encoder: ResolutionEncoder
    dpimappings: Tuple[ResolutionMapping, ...]
    dpimapping_x: ResolutionMapping
    dpimapping_y: ResolutionMapping
    leds: List[Led] = field(default_factory=list)
    frequency: int = Frequency.HZ_1000
    dirty: bool = True

    @classmethod
    def defaults(cls, model: NagaModel) -> DeviceConfiguration:
        """Power-on defaults: 1000 Hz, LEDs on, 1000 DPI on both axes."""
        mappings = build_dpimappings(model.generation)
        default = next(m for m in mappings if m.resolution == DEFAULT_RESOLUTION)
        return cls(
            encoder=encoder_for(model.generation),
            dpimappings=mappings,
            dpimapping_x=default,
            dpimapping_y=default,
            leds=default_leds(model.has_thumb_grid),
            frequency=Frequency.HZ_1000,
            dirty=True,
        )

    def supported_leds(self) -> List[Led]:
        """Copies of the LEDs this model has, ascending id."""
        return [replace(led) for led in self.leds
                if led.state != LedState.UNSUPPORTED]

    def mapping_for_resolution(self, resolution: int) -> Optional[ResolutionMapping]:
        for mapping in self.dpimappings:
            if mapping.resolution == resolution:
                return mapping
        return None

    def snapshot(self) -> ConfigSnapshot:
        return ConfigSnapshot(
            frequency=int(self.frequency),
            led_states=tuple(int(led.state) for led in self.leds),
            resolution_x=self.dpimapping_x.resolution,
            resolution_y=self.dpimapping_y.resolution,
            dirty=self.dirty,
        )
