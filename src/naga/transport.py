"""
USB control-transfer transport for the Naga configuration interface.

The mouse is configured through class control transfers addressed to
interface 0 (HID SET_REPORT / GET_REPORT on feature report 0).

The ``UsbTransport`` ABC abstracts the raw control transfer so that:
  • Tests can inject a mock transport (no real hardware needed).
  • ``PyUsbTransport`` provides real USB via pyusb (libusb backend).
  • ``HidApiTransport`` provides an alternative via HIDAPI feature reports.

``ControlChannel`` sits on top of a raw transport and enforces the
exchange contract the command sequencer relies on: exact byte counts,
minimum spacing between transfers, and bounded read retries.

Linux dependencies (install one):
  • pyusb:  ``pip install pyusb``  (needs libusb1: ``apt install libusb-1.0-0``)
  • hidapi: ``pip install hidapi`` (needs libhidapi: ``apt install libhidapi-dev``)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from .constants import (
    COMMAND_INDEX,
    PACKET_SPACING_MS,
    READ_ATTEMPTS,
    READ_DELAY_S,
    REQUEST_TYPE_IN,
    REQUEST_TYPE_OUT,
    USB_INTERFACE,
    USB_TIMEOUT_MS,
)
from .errors import TransportError
from .retry import RetryPolicy

# USB backends: graceful import, either one is enough
try:
    import usb.core
    import usb.util
    PYUSB_AVAILABLE = True
except ImportError:
    PYUSB_AVAILABLE = False

try:
    import hid as hidapi
    HIDAPI_AVAILABLE = True
except ImportError:
    HIDAPI_AVAILABLE = False

log = logging.getLogger(__name__)


# =========================================================================
# Abstract USB transport
# =========================================================================

class UsbTransport(ABC):
    """Abstract USB control transport, mockable for testing."""

    @abstractmethod
    def open(self) -> None:
        """Open the USB device and claim the configuration interface."""

    @abstractmethod
    def close(self) -> None:
        """Release the interface and close."""

    @abstractmethod
    def control_write(self, request: int, value: int, index: int,
                      data: bytes, timeout: int = USB_TIMEOUT_MS) -> int:
        """Class OUT control transfer.  Returns bytes transferred."""

    @abstractmethod
    def control_read(self, request: int, value: int, index: int,
                     length: int, timeout: int = USB_TIMEOUT_MS) -> bytes:
        """Class IN control transfer.  Returns the data read."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the device is currently open."""

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()


# =========================================================================
# Inter-transfer spacing
# =========================================================================

class EventSpacing:
    """Enforce a minimum gap between consecutive USB transfers.

    ``enter()`` blocks until *min_interval_ms* has passed since the last
    ``leave()``.  One instance belongs to one device session.
    """

    def __init__(self, min_interval_ms: int = PACKET_SPACING_MS):
        self.min_interval = min_interval_ms / 1000.0
        self._last_leave: Optional[float] = None

    def enter(self) -> None:
        if self._last_leave is None:
            return
        remaining = self._last_leave + self.min_interval - time.monotonic()
        if remaining > 0:
            time.sleep(remaining)

    def leave(self) -> None:
        self._last_leave = time.monotonic()

    def __enter__(self):
        self.enter()
        return self

    def __exit__(self, *exc):
        self.leave()


# =========================================================================
# Control channel (write-then-read exchange contract)
# =========================================================================

class ControlChannel:
    """Exact-size control writes and reads with spacing and read retries.

    Args:
        transport: Open raw transport.
        spacing: Spacing guard shared by every transfer of this session.
        read_policy: Retry policy for reads; a read attempt fails unless it
            returns exactly the requested number of bytes.
        timeout_ms: Per-transfer timeout handed to the transport.
    """

    def __init__(
        self,
        transport: UsbTransport,
        spacing: Optional[EventSpacing] = None,
        read_policy: Optional[RetryPolicy] = None,
        timeout_ms: int = USB_TIMEOUT_MS,
    ):
        self.transport = transport
        self.spacing = spacing if spacing is not None else EventSpacing()
        self.read_policy = read_policy or RetryPolicy(READ_ATTEMPTS, READ_DELAY_S)
        self.timeout_ms = timeout_ms

    def write(self, request: int, value: int, data: bytes) -> None:
        """Send *data*; raise TransportError unless every byte was accepted."""
        with self.spacing:
            transferred = self.transport.control_write(
                request, value, COMMAND_INDEX, data, self.timeout_ms,
            )
        if transferred != len(data):
            log.error("USB write 0x%02X 0x%04X failed: %d of %d bytes",
                      request, value, transferred, len(data))
            raise TransportError(
                f"USB write 0x{request:02X} 0x{value:04X}: "
                f"{transferred} of {len(data)} bytes transferred"
            )

    def read(self, request: int, value: int, length: int) -> bytes:
        """Read exactly *length* bytes, retrying short or failed transfers."""

        def _attempt() -> bytes:
            with self.spacing:
                data = self.transport.control_read(
                    request, value, COMMAND_INDEX, length, self.timeout_ms,
                )
            if len(data) != length:
                raise TransportError(
                    f"USB read 0x{request:02X} 0x{value:04X}: "
                    f"got {len(data)} of {length} bytes"
                )
            return bytes(data)

        try:
            return self.read_policy.run(
                _attempt, what=f"USB read 0x{request:02X} 0x{value:04X}",
            )
        except TransportError as e:
            log.error("%s", e)
            raise


# =========================================================================
# Real transport: PyUSB  (libusb backend)
# =========================================================================

class PyUsbTransport(UsbTransport):
    """Real USB transport using pyusb (libusb backend).

    1. Find device by VID/PID (and serial, when given)
    2. Detach the kernel HID driver from interface 0 if bound
    3. Claim interface 0
    4. Class control transfers to the interface
    5. On close: release, re-attach the kernel driver

    Requires: ``pip install pyusb`` + ``apt install libusb-1.0-0``
    """

    def __init__(self, vid: int, pid: int, serial: Optional[str] = None):
        if not PYUSB_AVAILABLE:
            raise ImportError(
                "pyusb is not installed. Install with: pip install pyusb\n"
                "Also need libusb: apt install libusb-1.0-0 (Debian/Ubuntu) "
                "or dnf install libusb1 (Fedora)"
            )
        self._vid = vid
        self._pid = pid
        self._serial = serial
        self._device = None
        self._is_open = False
        self._reattach = False

    def open(self) -> None:
        kwargs = {'idVendor': self._vid, 'idProduct': self._pid}
        if self._serial:
            kwargs['serial_number'] = self._serial

        self._device = usb.core.find(**kwargs)
        if self._device is None:
            raise TransportError(
                f"USB device not found: VID={self._vid:#06x} PID={self._pid:#06x}"
            )

        try:
            if self._device.is_kernel_driver_active(USB_INTERFACE):
                self._device.detach_kernel_driver(USB_INTERFACE)
                self._reattach = True
            usb.util.claim_interface(self._device, USB_INTERFACE)
        except usb.core.USBError as e:
            # Hand the mouse back to the kernel, or it stops acting as a pointer
            self._restore_kernel_driver()
            usb.util.dispose_resources(self._device)
            self._device = None
            raise TransportError(f"Failed to claim interface {USB_INTERFACE}: {e}") from e

        self._is_open = True
        log.debug("pyusb transport open: %04x:%04x", self._vid, self._pid)

    def _restore_kernel_driver(self) -> None:
        if not self._reattach:
            return
        try:
            self._device.attach_kernel_driver(USB_INTERFACE)
        except usb.core.USBError as e:
            log.warning("Could not reattach kernel driver to interface %d: %s",
                        USB_INTERFACE, e)
        self._reattach = False

    def close(self) -> None:
        if self._device is not None:
            try:
                usb.util.release_interface(self._device, USB_INTERFACE)
            except usb.core.USBError as e:
                log.debug("Release of interface %d failed: %s", USB_INTERFACE, e)
            self._restore_kernel_driver()
            usb.util.dispose_resources(self._device)
            self._device = None
        self._is_open = False

    def control_write(self, request: int, value: int, index: int,
                      data: bytes, timeout: int = USB_TIMEOUT_MS) -> int:
        if not self._is_open or self._device is None:
            raise TransportError("Transport not open")
        try:
            return self._device.ctrl_transfer(
                REQUEST_TYPE_OUT, request, value, index, data, timeout=timeout,
            )
        except usb.core.USBError as e:
            raise TransportError(f"USB write 0x{request:02X} failed: {e}") from e

    def control_read(self, request: int, value: int, index: int,
                     length: int, timeout: int = USB_TIMEOUT_MS) -> bytes:
        if not self._is_open or self._device is None:
            raise TransportError("Transport not open")
        try:
            data = self._device.ctrl_transfer(
                REQUEST_TYPE_IN, request, value, index, length, timeout=timeout,
            )
        except usb.core.USBError as e:
            raise TransportError(f"USB read 0x{request:02X} failed: {e}") from e
        return bytes(data)

    @property
    def is_open(self) -> bool:
        return self._is_open


# =========================================================================
# Real transport: HIDAPI
# =========================================================================
# The configuration requests are plain HID feature reports, so the OS HID
# driver can carry them without detaching anything.

class HidApiTransport(UsbTransport):
    """USB transport using HIDAPI feature reports.

    The report id is the low byte of the control-transfer value field
    (0x0300 → report 0).  hidapi prepends it on the wire, so it is added
    on write and stripped on read.

    Requires: ``pip install hidapi`` + ``apt install libhidapi-dev``
    """

    def __init__(self, vid: int, pid: int, serial: Optional[str] = None):
        if not HIDAPI_AVAILABLE:
            raise ImportError(
                "hidapi is not installed. Install with: pip install hidapi\n"
                "Also need libhidapi: apt install libhidapi-dev (Debian/Ubuntu) "
                "or dnf install hidapi-devel (Fedora)"
            )
        self._vid = vid
        self._pid = pid
        self._serial = serial
        self._device = None
        self._is_open = False

    def open(self) -> None:
        device = hidapi.device()
        try:
            device.open(self._vid, self._pid, self._serial)
        except OSError as e:
            raise TransportError(
                f"HID device not found: VID={self._vid:#06x} PID={self._pid:#06x}"
            ) from e
        self._device = device
        self._is_open = True
        log.debug("hidapi transport open: %04x:%04x", self._vid, self._pid)

    def close(self) -> None:
        if self._device is not None:
            self._device.close()
            self._device = None
        self._is_open = False

    def control_write(self, request: int, value: int, index: int,
                      data: bytes, timeout: int = USB_TIMEOUT_MS) -> int:
        if not self._is_open or self._device is None:
            raise TransportError("Transport not open")
        report = bytes([value & 0xFF]) + data
        try:
            written = self._device.send_feature_report(report)
        except (OSError, ValueError) as e:
            raise TransportError(f"HID feature write failed: {e}") from e
        # hidapi counts the report id byte
        return max(0, written - 1)

    def control_read(self, request: int, value: int, index: int,
                     length: int, timeout: int = USB_TIMEOUT_MS) -> bytes:
        if not self._is_open or self._device is None:
            raise TransportError("Transport not open")
        try:
            data = self._device.get_feature_report(value & 0xFF, length + 1)
        except (OSError, ValueError) as e:
            raise TransportError(f"HID feature read failed: {e}") from e
        return bytes(data[1:]) if data else b''

    @property
    def is_open(self) -> bool:
        return self._is_open


# =========================================================================
# Backend selection
# =========================================================================

def create_transport(vid: int, pid: int, serial: Optional[str] = None,
                     backend: str = "auto") -> UsbTransport:
    """Create a transport for the given backend.

    ``"auto"`` prefers pyusb and falls back to hidapi.
    """
    if backend == "pyusb" or (backend == "auto" and PYUSB_AVAILABLE):
        log.debug("Using pyusb backend for %04x:%04x", vid, pid)
        return PyUsbTransport(vid, pid, serial)
    if backend in ("hidapi", "auto"):
        log.debug("Using hidapi backend for %04x:%04x", vid, pid)
        return HidApiTransport(vid, pid, serial)
    raise ValueError(f"Unknown USB backend: {backend!r}")
