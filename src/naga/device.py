"""
Naga device session: claim, configure, commit.

A ``NagaDevice`` owns everything a session needs (transport, packet
spacing, claim counter, pending configuration), so two sessions never
share state.  Typical use::

    from naga import NagaDevice, LedState, Frequency

    with NagaDevice.open(pid=0x0040) as mouse:
        mouse.initialize()              # probe firmware, push defaults
        with mouse.claimed():
            mouse.set_resolution(1600, axis=1)
            mouse.set_led(0, LedState.OFF)
            mouse.set_frequency(Frequency.HZ_500)
            mouse.commit()

Setters and commit require a claim; without one they raise DeviceBusy.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Tuple, Union

from .conf import Settings, settings
from .constants import NAGA_PID_CLASSIC, RAZER_VID, READ_DELAY_S
from .errors import DeviceBusy, InvalidArgument, NagaError
from .models import fw_major, fw_minor, model_for_pid
from .resolution import ResolutionMapping
from .retry import RetryPolicy
from .sequencer import CommandSequencer
from .state import (
    AXES,
    AXIS_X,
    AXIS_Y,
    NR_LEDS,
    SUPPORTED_FREQUENCIES,
    Axis,
    ConfigSnapshot,
    DeviceConfiguration,
    Frequency,
    Led,
    LedState,
)
from .transport import ControlChannel, EventSpacing, UsbTransport, create_transport

log = logging.getLogger(__name__)

AxisRef = Union[Axis, int, None]


class NagaDevice:
    """One configuration session with one physical Naga.

    Observer callbacks:
        on_state_changed(key: str, value): fired on ``"dirty"`` transitions
        and once with ``"initialized"`` after a successful initialize().
    """

    def __init__(self, transport: UsbTransport, pid: int = NAGA_PID_CLASSIC,
                 config: Optional[Settings] = None):
        cfg = config or settings
        self.transport = transport
        self.model = model_for_pid(pid)

        self.spacing = EventSpacing(cfg.packet_spacing_ms)
        self.channel = ControlChannel(
            transport,
            spacing=self.spacing,
            read_policy=RetryPolicy(cfg.read_attempts, READ_DELAY_S),
            timeout_ms=cfg.usb_timeout_ms,
        )
        self.sequencer = CommandSequencer(
            self.channel,
            probe_policy=RetryPolicy(cfg.probe_attempts, cfg.probe_delay_s),
        )

        self.config = DeviceConfiguration.defaults(self.model)
        self.fw_version = 0
        self.suggest_fw_upgrade = False
        self.initialized = False

        self._claim_count = 0
        self._opened_transport = False
        self.on_state_changed: Optional[Callable[[str, object], None]] = None

    @classmethod
    def open(cls, pid: int, serial: Optional[str] = None,
             backend: Optional[str] = None,
             config: Optional[Settings] = None) -> NagaDevice:
        """Build a session on a real USB backend (not yet claimed)."""
        cfg = config or settings
        transport = create_transport(RAZER_VID, pid, serial, backend or cfg.backend)
        return cls(transport, pid, cfg)

    # -- Claim -------------------------------------------------------------

    @property
    def is_claimed(self) -> bool:
        return self._claim_count > 0

    def claim(self) -> None:
        """Take (or nest) exclusive ownership; the first claim opens the transport."""
        if self._claim_count == 0 and not self.transport.is_open:
            self.transport.open()
            self._opened_transport = True
        self._claim_count += 1

    def release(self) -> None:
        """Drop one claim; the last release closes a transport we opened."""
        if self._claim_count == 0:
            raise DeviceBusy("Device released without being claimed")
        self._claim_count -= 1
        if self._claim_count == 0 and self._opened_transport:
            self.transport.close()
            self._opened_transport = False

    @contextmanager
    def claimed(self) -> Iterator[NagaDevice]:
        self.claim()
        try:
            yield self
        finally:
            self.release()

    def _require_claim(self) -> None:
        if not self._claim_count:
            raise DeviceBusy("Device is not claimed")

    # -- Observers ---------------------------------------------------------

    def _notify_state_changed(self, key: str, value: object) -> None:
        if self.on_state_changed:
            self.on_state_changed(key, value)

    def _set_dirty(self, dirty: bool) -> None:
        if self.config.dirty != dirty:
            self.config.dirty = dirty
            self._notify_state_changed("dirty", dirty)

    # -- Initialization ----------------------------------------------------

    def initialize(self) -> None:
        """Probe the firmware and push default settings.

        Claims the device for the duration and always releases it.

        Raises:
            DeviceNotResponding: The firmware probe ran out of attempts.
            TransportError: The initial commit failed.
        """
        with self.claimed():
            self.fw_version = self.sequencer.probe_firmware_version()
            self._check_firmware()

            self.config = DeviceConfiguration.defaults(self.model)
            try:
                self.commit(force=True)
            except NagaError as e:
                log.error("Failed to commit initial settings: %s", e)
                raise

        self.initialized = True
        log.info("%s initialized: firmware %d.%02d, %s sensor",
                 self.model.name, fw_major(self.fw_version),
                 fw_minor(self.fw_version), self.model.generation.value)
        self._notify_state_changed("initialized", True)

    def _check_firmware(self) -> None:
        good = self.model.min_good_fw
        if good and self.fw_version < good:
            log.warning(
                "The firmware version %d.%02d of this %s has known bugs. "
                "Please upgrade to version %d.%02d or later.",
                fw_major(self.fw_version), fw_minor(self.fw_version),
                self.model.name, fw_major(good), fw_minor(good),
            )
            self.suggest_fw_upgrade = True

    # -- Commit ------------------------------------------------------------

    @property
    def dirty(self) -> bool:
        return self.config.dirty

    def commit(self, force: bool = False) -> None:
        """Push pending changes to the device.

        A clean configuration is a no-op unless *force* is set.  On failure
        the configuration stays dirty so the next commit resends everything.

        Raises:
            DeviceBusy: Not claimed.
            TransportError / InvalidArgument: From the command sequence.
        """
        self._require_claim()
        if not (self.config.dirty or force):
            return
        self.sequencer.commit(self.config)
        self._set_dirty(False)

    # -- LEDs --------------------------------------------------------------

    def get_leds(self) -> List[Led]:
        """Supported LEDs in ascending id order (copies, safe to keep)."""
        return self.config.supported_leds()

    def set_led(self, led: Union[Led, int], state: LedState) -> None:
        """Switch one LED on or off.

        Raises:
            InvalidArgument: Unknown or unsupported LED, or *state* not ON/OFF.
            DeviceBusy: Not claimed.
        """
        led_id = led.id if isinstance(led, Led) else led
        if not isinstance(led_id, int) or not 0 <= led_id < NR_LEDS:
            raise InvalidArgument(f"Unknown LED id: {led_id!r}")
        if state not in (LedState.OFF, LedState.ON):
            raise InvalidArgument(f"LED state must be ON or OFF, got {state!r}")
        target = self.config.leds[led_id]
        if target.state == LedState.UNSUPPORTED:
            raise InvalidArgument(f"{target.name} LED is not present on {self.model.name}")
        self._require_claim()

        target.state = LedState(state)
        self._set_dirty(True)

    # -- Frequency ---------------------------------------------------------

    def supported_frequencies(self) -> List[Frequency]:
        return list(SUPPORTED_FREQUENCIES)

    def get_frequency(self) -> int:
        return self.config.frequency

    def set_frequency(self, frequency: int) -> None:
        """Set the scan frequency.

        Any integer is stored; one without a wire encoding is rejected at
        commit.

        Raises:
            DeviceBusy: Not claimed.
            InvalidArgument: *frequency* is not an integer.
        """
        self._require_claim()
        if isinstance(frequency, bool) or not isinstance(frequency, int):
            raise InvalidArgument(f"Scan frequency must be an integer, got {frequency!r}")
        try:
            frequency = Frequency(frequency)
        except ValueError:
            pass  # out-of-range int, commit raises InvalidArgument
        self.config.frequency = frequency
        self._set_dirty(True)

    # -- Resolution --------------------------------------------------------

    def supported_axes(self) -> Tuple[Axis, ...]:
        return AXES

    def supported_resolutions(self) -> List[int]:
        return [m.resolution for m in self.config.dpimappings]

    def supported_dpimappings(self) -> Tuple[ResolutionMapping, ...]:
        return self.config.dpimappings

    def get_dpimapping(self, axis: AxisRef = None) -> Optional[ResolutionMapping]:
        """Mapping currently selected for *axis* (X when None)."""
        axis_id = AXIS_X if axis is None else getattr(axis, 'id', axis)
        if axis_id == AXIS_X:
            return self.config.dpimapping_x
        if axis_id == AXIS_Y:
            return self.config.dpimapping_y
        return None

    def set_dpimapping(self, mapping: ResolutionMapping, axis: AxisRef = None) -> None:
        """Select *mapping* for one axis, or for both X and Y when *axis* is None.

        Raises:
            DeviceBusy: Not claimed.
            InvalidArgument: Axis is not X or Y, or mapping is foreign.
        """
        self._require_claim()
        if mapping not in self.config.dpimappings:
            raise InvalidArgument(f"{mapping!r} is not supported by {self.model.name}")

        if axis is None:
            self.config.dpimapping_x = mapping
            self.config.dpimapping_y = mapping
        else:
            axis_id = getattr(axis, 'id', axis)
            if axis_id == AXIS_X:
                self.config.dpimapping_x = mapping
            elif axis_id == AXIS_Y:
                self.config.dpimapping_y = mapping
            else:
                raise InvalidArgument(f"Axis {axis_id!r} has no resolution mapping")
        self._set_dirty(True)

    def set_resolution(self, resolution: int, axis: AxisRef = None) -> None:
        """Select the table entry for *resolution* DPI."""
        mapping = self.config.mapping_for_resolution(resolution)
        if mapping is None:
            raise InvalidArgument(
                f"{self.model.name} does not support {resolution} DPI"
            )
        self.set_dpimapping(mapping, axis)

    # -- Misc --------------------------------------------------------------

    def snapshot(self) -> ConfigSnapshot:
        return self.config.snapshot()

    def close(self) -> None:
        """Drop every outstanding claim."""
        while self._claim_count:
            self.release()

    def __enter__(self) -> NagaDevice:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"NagaDevice(model={self.model.name!r}, pid=0x{self.model.pid:04x}, "
            f"fw=0x{self.fw_version:04x}, claimed={self._claim_count})"
        )
