"""Exception types raised by the Naga control-protocol layer."""

from __future__ import annotations


class NagaError(RuntimeError):
    """Base class for every error this package raises."""


class TransportError(NagaError):
    """A control transfer failed, timed out, or moved the wrong byte count."""


class DeviceNotResponding(NagaError):
    """The firmware never answered the version probe."""


class DeviceBusy(NagaError):
    """Mutation or commit attempted without holding a claim."""


class InvalidArgument(NagaError, ValueError):
    """Out-of-domain frequency, axis, LED id or LED state."""


class RetriesExhausted(NagaError):
    """Every attempt ran, but none produced an accepted result."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class ProtocolAnomaly(NagaError):
    """The device answered a command with an unexpected status byte.

    Reported and logged, never raised: the device is presumed to have
    applied the command anyway.
    """

    def __init__(self, command: int, request: int, status: int):
        super().__init__(
            f"Command {command:04X}/{request:04X} failed with {status:02X}"
        )
        self.command = command
        self.request = request
        self.status = status
