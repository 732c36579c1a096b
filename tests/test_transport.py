"""Tests for transport.py — spacing, control channel and USB backends.

Real USB is never touched: pyusb calls are patched on the usb module and
hidapi is replaced with a mock.
"""

from unittest.mock import MagicMock, patch

import pytest
import usb.core

from naga.constants import (
    COMMAND_VALUE,
    REQUEST_READ,
    REQUEST_TYPE_IN,
    REQUEST_TYPE_OUT,
    REQUEST_WRITE,
)
from naga.errors import TransportError
from naga.retry import RetryPolicy
from naga.transport import (
    ControlChannel,
    EventSpacing,
    HidApiTransport,
    PyUsbTransport,
    UsbTransport,
    create_transport,
)

VID, PID = 0x1532, 0x0040


# =========================================================================
# EventSpacing
# =========================================================================

class TestEventSpacing:

    def test_first_enter_never_sleeps(self, sleeps):
        EventSpacing(25).enter()
        sleeps.transport.assert_not_called()

    @patch("naga.transport.time.monotonic")
    def test_waits_remaining_interval(self, mono, sleeps):
        spacing = EventSpacing(25)
        mono.return_value = 10.000
        spacing.leave()
        mono.return_value = 10.010
        spacing.enter()
        sleeps.transport.assert_called_once()
        assert sleeps.transport.call_args.args[0] == pytest.approx(0.015)
        sleeps.retry.assert_not_called()

    @patch("naga.transport.time.monotonic")
    def test_no_wait_after_interval(self, mono, sleeps):
        spacing = EventSpacing(25)
        mono.return_value = 10.0
        spacing.leave()
        mono.return_value = 10.5
        spacing.enter()
        sleeps.transport.assert_not_called()

    @patch("naga.transport.time.monotonic")
    def test_context_manager(self, mono, sleeps):
        spacing = EventSpacing(25)
        mono.return_value = 3.0
        with spacing:
            pass
        with spacing:
            pass
        sleeps.transport.assert_called_once()
        assert sleeps.transport.call_args.args[0] == pytest.approx(0.025)

    def test_instances_independent(self, sleeps):
        a, b = EventSpacing(25), EventSpacing(25)
        a.leave()
        b.enter()
        sleeps.transport.assert_not_called()


# =========================================================================
# ControlChannel
# =========================================================================

class TestControlChannel:

    def _channel(self, **kw):
        transport = MagicMock(spec=UsbTransport)
        return transport, ControlChannel(transport, timeout_ms=1234, **kw)

    def test_write_passes_request_value_timeout(self):
        transport, channel = self._channel()
        transport.control_write.return_value = 90
        channel.write(REQUEST_WRITE, COMMAND_VALUE, b"\x00" * 90)
        transport.control_write.assert_called_once_with(
            REQUEST_WRITE, COMMAND_VALUE, 0, b"\x00" * 90, 1234)

    def test_short_write_raises(self):
        transport, channel = self._channel()
        transport.control_write.return_value = 64
        with pytest.raises(TransportError, match="64 of 90"):
            channel.write(REQUEST_WRITE, COMMAND_VALUE, b"\x00" * 90)

    def test_write_error_propagates(self):
        transport, channel = self._channel()
        transport.control_write.side_effect = TransportError("stall")
        with pytest.raises(TransportError, match="stall"):
            channel.write(REQUEST_WRITE, COMMAND_VALUE, b"\x00" * 90)

    def test_read_exact(self):
        transport, channel = self._channel()
        transport.control_read.return_value = b"\x02" * 90
        assert channel.read(REQUEST_READ, COMMAND_VALUE, 90) == b"\x02" * 90
        transport.control_read.assert_called_once_with(
            REQUEST_READ, COMMAND_VALUE, 0, 90, 1234)

    def test_short_read_retried(self):
        transport, channel = self._channel()
        transport.control_read.side_effect = [b"\x00" * 10, b"\x01" * 90]
        assert channel.read(REQUEST_READ, COMMAND_VALUE, 90) == b"\x01" * 90
        assert transport.control_read.call_count == 2

    def test_read_gives_up_after_three(self):
        transport, channel = self._channel()
        transport.control_read.side_effect = TransportError("timeout")
        with pytest.raises(TransportError):
            channel.read(REQUEST_READ, COMMAND_VALUE, 90)
        assert transport.control_read.call_count == 3

    def test_custom_read_policy(self):
        transport, channel = self._channel(read_policy=RetryPolicy(1))
        transport.control_read.return_value = b""
        with pytest.raises(TransportError, match="got 0 of 90"):
            channel.read(REQUEST_READ, COMMAND_VALUE, 90)
        assert transport.control_read.call_count == 1

    def test_every_transfer_spaced(self):
        transport = MagicMock(spec=UsbTransport)
        transport.control_write.return_value = 90
        transport.control_read.return_value = b"\x00" * 90
        spacing = MagicMock(spec=EventSpacing)
        channel = ControlChannel(transport, spacing=spacing)
        channel.write(REQUEST_WRITE, COMMAND_VALUE, b"\x00" * 90)
        channel.read(REQUEST_READ, COMMAND_VALUE, 90)
        assert spacing.__enter__.call_count == 2
        assert spacing.__exit__.call_count == 2


# =========================================================================
# PyUsbTransport
# =========================================================================

@pytest.fixture
def usb_util():
    with patch("naga.transport.usb.util.claim_interface") as claim, \
         patch("naga.transport.usb.util.release_interface") as release, \
         patch("naga.transport.usb.util.dispose_resources") as dispose:
        yield MagicMock(claim=claim, release=release, dispose=dispose)


class TestPyUsbTransport:

    @patch("naga.transport.usb.core.find")
    def test_open_detaches_and_claims(self, find, usb_util):
        dev = MagicMock()
        dev.is_kernel_driver_active.return_value = True
        find.return_value = dev

        t = PyUsbTransport(VID, PID)
        t.open()

        find.assert_called_once_with(idVendor=VID, idProduct=PID)
        dev.detach_kernel_driver.assert_called_once_with(0)
        usb_util.claim.assert_called_once_with(dev, 0)
        assert t.is_open

    @patch("naga.transport.usb.core.find")
    def test_open_with_serial(self, find, usb_util):
        find.return_value = MagicMock()
        PyUsbTransport(VID, PID, serial="ABC").open()
        find.assert_called_once_with(idVendor=VID, idProduct=PID, serial_number="ABC")

    @patch("naga.transport.usb.core.find", return_value=None)
    def test_open_not_found(self, find):
        with pytest.raises(TransportError, match="not found"):
            PyUsbTransport(VID, PID).open()

    @patch("naga.transport.usb.core.find")
    def test_claim_failure_returns_device_to_kernel(self, find, usb_util):
        dev = MagicMock()
        dev.is_kernel_driver_active.return_value = True
        find.return_value = dev
        usb_util.claim.side_effect = usb.core.USBError("busy")
        t = PyUsbTransport(VID, PID)
        with pytest.raises(TransportError, match="claim"):
            t.open()
        dev.detach_kernel_driver.assert_called_once_with(0)
        dev.attach_kernel_driver.assert_called_once_with(0)
        usb_util.dispose.assert_called_once_with(dev)
        assert not t.is_open

    @patch("naga.transport.usb.core.find")
    def test_claim_failure_without_detach(self, find, usb_util):
        dev = MagicMock()
        dev.is_kernel_driver_active.return_value = False
        find.return_value = dev
        usb_util.claim.side_effect = usb.core.USBError("busy")
        with pytest.raises(TransportError):
            PyUsbTransport(VID, PID).open()
        dev.attach_kernel_driver.assert_not_called()

    @patch("naga.transport.usb.core.find")
    def test_close_reattaches_after_release_failure(self, find, usb_util):
        dev = MagicMock()
        dev.is_kernel_driver_active.return_value = True
        find.return_value = dev
        usb_util.release.side_effect = usb.core.USBError("no device")
        t = PyUsbTransport(VID, PID)
        t.open()
        t.close()
        dev.attach_kernel_driver.assert_called_once_with(0)
        usb_util.dispose.assert_called_once_with(dev)
        assert not t.is_open

    @patch("naga.transport.usb.core.find")
    def test_reattach_failure_still_disposes(self, find, usb_util):
        dev = MagicMock()
        dev.is_kernel_driver_active.return_value = True
        dev.attach_kernel_driver.side_effect = usb.core.USBError("gone")
        find.return_value = dev
        t = PyUsbTransport(VID, PID)
        t.open()
        t.close()
        usb_util.dispose.assert_called_once_with(dev)

    def test_pyusb_unavailable(self):
        with patch("naga.transport.PYUSB_AVAILABLE", False):
            with pytest.raises(ImportError, match="pyusb"):
                PyUsbTransport(VID, PID)

    @patch("naga.transport.usb.core.find")
    def test_close_reattaches(self, find, usb_util):
        dev = MagicMock()
        dev.is_kernel_driver_active.return_value = True
        find.return_value = dev
        t = PyUsbTransport(VID, PID)
        t.open()
        t.close()
        usb_util.release.assert_called_once_with(dev, 0)
        dev.attach_kernel_driver.assert_called_once_with(0)
        usb_util.dispose.assert_called_once_with(dev)
        assert not t.is_open

    @patch("naga.transport.usb.core.find")
    def test_close_without_detach_does_not_reattach(self, find, usb_util):
        dev = MagicMock()
        dev.is_kernel_driver_active.return_value = False
        find.return_value = dev
        with PyUsbTransport(VID, PID):
            pass
        dev.attach_kernel_driver.assert_not_called()

    @patch("naga.transport.usb.core.find")
    def test_control_transfers(self, find, usb_util):
        dev = MagicMock()
        dev.ctrl_transfer.side_effect = [90, bytearray(b"\x02" * 90)]
        find.return_value = dev
        t = PyUsbTransport(VID, PID)
        t.open()

        assert t.control_write(0x09, 0x300, 0, b"\x00" * 90, 3000) == 90
        data = t.control_read(0x01, 0x300, 0, 90, 3000)

        assert data == b"\x02" * 90
        assert dev.ctrl_transfer.call_args_list[0].args == (
            REQUEST_TYPE_OUT, 0x09, 0x300, 0, b"\x00" * 90)
        assert dev.ctrl_transfer.call_args_list[1].args == (
            REQUEST_TYPE_IN, 0x01, 0x300, 0, 90)
        assert dev.ctrl_transfer.call_args_list[1].kwargs == {"timeout": 3000}

    @patch("naga.transport.usb.core.find")
    def test_usb_error_wrapped(self, find, usb_util):
        dev = MagicMock()
        dev.ctrl_transfer.side_effect = usb.core.USBError("pipe")
        find.return_value = dev
        t = PyUsbTransport(VID, PID)
        t.open()
        with pytest.raises(TransportError):
            t.control_write(0x09, 0x300, 0, b"\x00", 3000)
        with pytest.raises(TransportError):
            t.control_read(0x01, 0x300, 0, 90, 3000)

    def test_transfer_when_closed(self):
        with pytest.raises(TransportError, match="not open"):
            PyUsbTransport(VID, PID).control_write(0x09, 0x300, 0, b"", 3000)


# =========================================================================
# HidApiTransport
# =========================================================================

@pytest.fixture
def hid():
    with patch("naga.transport.hidapi", create=True) as mod, \
         patch("naga.transport.HIDAPI_AVAILABLE", True):
        yield mod


class TestHidApiTransport:

    def test_unavailable(self):
        with patch("naga.transport.HIDAPI_AVAILABLE", False):
            with pytest.raises(ImportError):
                HidApiTransport(VID, PID)

    def test_open(self, hid):
        t = HidApiTransport(VID, PID, "SER")
        t.open()
        hid.device.return_value.open.assert_called_once_with(VID, PID, "SER")
        assert t.is_open

    def test_open_failure(self, hid):
        hid.device.return_value.open.side_effect = OSError("open failed")
        t = HidApiTransport(VID, PID)
        with pytest.raises(TransportError):
            t.open()
        assert not t.is_open

    def test_write_prepends_report_id(self, hid):
        dev = hid.device.return_value
        dev.send_feature_report.return_value = 91
        t = HidApiTransport(VID, PID)
        t.open()
        assert t.control_write(0x09, 0x0300, 0, b"\xaa" * 90) == 90
        dev.send_feature_report.assert_called_once_with(b"\x00" + b"\xaa" * 90)

    def test_read_strips_report_id(self, hid):
        dev = hid.device.return_value
        dev.get_feature_report.return_value = [0x00] + [0x02] * 90
        t = HidApiTransport(VID, PID)
        t.open()
        assert t.control_read(0x01, 0x0300, 0, 90) == b"\x02" * 90
        dev.get_feature_report.assert_called_once_with(0, 91)

    def test_io_error_wrapped(self, hid):
        dev = hid.device.return_value
        dev.send_feature_report.side_effect = OSError("gone")
        t = HidApiTransport(VID, PID)
        t.open()
        with pytest.raises(TransportError):
            t.control_write(0x09, 0x0300, 0, b"\x00")

    def test_close(self, hid):
        t = HidApiTransport(VID, PID)
        t.open()
        t.close()
        hid.device.return_value.close.assert_called_once()
        assert not t.is_open


# =========================================================================
# Backend selection
# =========================================================================

class TestCreateTransport:

    def test_auto_prefers_pyusb(self):
        assert isinstance(create_transport(VID, PID), PyUsbTransport)

    def test_explicit_pyusb(self):
        assert isinstance(create_transport(VID, PID, backend="pyusb"), PyUsbTransport)

    def test_hidapi(self, hid):
        assert isinstance(create_transport(VID, PID, backend="hidapi"), HidApiTransport)

    def test_auto_falls_back_to_hidapi(self, hid):
        with patch("naga.transport.PYUSB_AVAILABLE", False):
            assert isinstance(create_transport(VID, PID), HidApiTransport)

    def test_explicit_pyusb_when_missing(self):
        with patch("naga.transport.PYUSB_AVAILABLE", False):
            with pytest.raises(ImportError):
                create_transport(VID, PID, backend="pyusb")

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_transport(VID, PID, backend="serial")
