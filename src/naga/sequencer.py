"""
Command sequencing: single exchanges, the firmware probe, and commit.

A commit is an ordered run of exchanges (resolution, then every
supported LED, then scan frequency) that stops at the first failure.
Each exchange is one 90-byte write followed by one 90-byte read.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .constants import (
    CMD_FIRMWARE_VERSION,
    CMD_FREQUENCY,
    CMD_LED,
    COMMAND_VALUE,
    FRAME_SIZE,
    PROBE_ATTEMPTS,
    PROBE_DELAY_S,
    REQUEST_READ,
    REQUEST_WRITE,
)
from .errors import (
    DeviceNotResponding,
    InvalidArgument,
    ProtocolAnomaly,
    RetriesExhausted,
    TransportError,
)
from .frame import CommandFrame, decode_frame, encode_frame, seal_frame
from .retry import RetryPolicy
from .state import DeviceConfiguration, Frequency, Led, LedState
from .transport import ControlChannel

log = logging.getLogger(__name__)

# Frequency → value byte of the frequency-set command
FREQUENCY_CODES = {
    Frequency.HZ_125: 8,
    Frequency.HZ_500: 2,
    Frequency.HZ_1000: 1,
    Frequency.UNKNOWN: 1,
}


def frequency_code(frequency: int) -> int:
    """Map a scan frequency to its wire value.

    Raises:
        InvalidArgument: For anything but 125/500/1000 Hz or UNKNOWN.
    """
    try:
        return FREQUENCY_CODES[frequency]
    except (KeyError, TypeError):
        raise InvalidArgument(f"Unsupported scan frequency: {frequency!r}") from None


def build_led_frame(led: Led) -> bytes:
    command, request = CMD_LED
    values = led.selector + bytes([1 if led.state == LedState.ON else 0])
    return encode_frame(command, request, values)


def build_frequency_frame(frequency: int) -> bytes:
    command, request = CMD_FREQUENCY
    return encode_frame(command, request, bytes([frequency_code(frequency)]))


class CommandSequencer:
    """Runs frame exchanges over a :class:`ControlChannel`.

    Observer callback:
        on_anomaly(anomaly: ProtocolAnomaly): fired when a response carries
        a status byte outside {0, 1, 2}.  The exchange still succeeds.
    """

    def __init__(self, channel: ControlChannel,
                 probe_policy: Optional[RetryPolicy] = None):
        self.channel = channel
        self.probe_policy = probe_policy or RetryPolicy(PROBE_ATTEMPTS, PROBE_DELAY_S)
        self.on_anomaly: Optional[Callable[[ProtocolAnomaly], None]] = None
        self.last_anomaly: Optional[ProtocolAnomaly] = None

    # -- Single exchange -------------------------------------------------

    def send_command(self, frame: bytes) -> CommandFrame:
        """Write *frame*, read the response, soft-validate it.

        The checksum is recomputed right before sending.  A bad response
        status is reported through ``on_anomaly`` and logged, never raised.

        Returns:
            The decoded response.

        Raises:
            TransportError: If the write or the (retried) read fails.
        """
        frame = seal_frame(frame)
        sent = decode_frame(frame)

        self.channel.write(REQUEST_WRITE, COMMAND_VALUE, frame)
        response = decode_frame(
            self.channel.read(REQUEST_READ, COMMAND_VALUE, FRAME_SIZE)
        )
        log.debug("Command %04X/%04X -> status %02X",
                  sent.command, sent.request, response.status)

        if not response.checksum_valid:
            log.warning("Command %04X/%04X: response checksum %02X, expected %02X",
                        sent.command, sent.request,
                        response.checksum, response.computed_checksum)

        if not response.status_ok:
            self._report_anomaly(
                ProtocolAnomaly(sent.command, sent.request, response.status)
            )

        return response

    def _report_anomaly(self, anomaly: ProtocolAnomaly) -> None:
        log.warning("%s", anomaly)
        self.last_anomaly = anomaly
        if self.on_anomaly:
            self.on_anomaly(anomaly)

    # -- Firmware probe --------------------------------------------------

    def probe_firmware_version(self) -> int:
        """Poke the device until it reports a firmware version.

        A version is accepted once its major (high) byte is nonzero.

        Raises:
            DeviceNotResponding: After the probe policy runs out.
        """
        command, request = CMD_FIRMWARE_VERSION
        query = encode_frame(command, request)

        def _probe() -> int:
            return self.send_command(query).value_be16(0)

        try:
            return self.probe_policy.run(
                _probe,
                accept=lambda version: (version & 0xFF00) != 0,
                what="Firmware version probe",
            )
        except (TransportError, RetriesExhausted) as e:
            log.error("Failed to read firmware version: %s", e)
            raise DeviceNotResponding(
                f"No firmware version after {self.probe_policy.attempts} attempts"
            ) from e

    # -- Commit ----------------------------------------------------------

    def commit(self, config: DeviceConfiguration) -> None:
        """Push *config* to the device: resolution, LEDs, frequency.

        Stops at the first failing step; earlier steps are not rolled back
        and ``config`` is not touched.

        Raises:
            TransportError: A frame exchange failed.
            InvalidArgument: ``config.frequency`` has no wire encoding.
        """
        self.send_command(
            config.encoder.encode(config.dpimapping_x, config.dpimapping_y)
        )

        for led in config.leds:
            if led.state == LedState.UNSUPPORTED:
                continue
            self.send_command(build_led_frame(led))

        self.send_command(build_frequency_frame(config.frequency))
