"""Shared fixtures: a scripted fake Naga and patched sleeps.

No real USB hardware required — the fake implements UsbTransport and
answers every frame the way the firmware does.
"""
from __future__ import annotations

from types import SimpleNamespace
from typing import Iterable, List, Optional
from unittest.mock import patch

import pytest

from naga.conf import Settings
from naga.constants import CMD_FIRMWARE_VERSION, NAGA_PID_2014, NAGA_PID_CLASSIC
from naga.device import NagaDevice
from naga.errors import TransportError
from naga.frame import decode_frame, seal_frame
from naga.transport import UsbTransport


def make_response(request_frame: bytes, status: int = 0x02,
                  values: Optional[bytes] = None) -> bytes:
    """Echo *request_frame* back with a status byte (and optional values)."""
    buf = bytearray(request_frame)
    buf[0] = status
    if values is not None:
        buf[8:8 + len(values)] = values
    return seal_frame(buf)


class FakeNaga(UsbTransport):
    """Scripted transport that behaves like a Naga's configuration interface.

    Args:
        fw_versions: Versions returned by successive firmware probes; the
            last one repeats.
        status: Status byte put into every response.
        fail_write_at: 1-based index of the write that raises TransportError.
    """

    def __init__(self, fw_versions: Iterable[int] = (0x0107,), status: int = 0x02,
                 fail_write_at: Optional[int] = None):
        self.fw_versions = list(fw_versions)
        self.status = status
        self.fail_write_at = fail_write_at
        self.writes: List[bytes] = []
        self.write_calls: List[tuple] = []
        self.read_calls: List[tuple] = []
        self.open_calls = 0
        self.close_calls = 0
        self._is_open = False

    # -- UsbTransport --------------------------------------------------------

    def open(self) -> None:
        self.open_calls += 1
        self._is_open = True

    def close(self) -> None:
        self.close_calls += 1
        self._is_open = False

    def control_write(self, request, value, index, data, timeout=0):
        self.write_calls.append((request, value, index, timeout))
        self.writes.append(bytes(data))
        if self.fail_write_at == len(self.writes):
            raise TransportError("injected write failure")
        return len(data)

    def control_read(self, request, value, index, length, timeout=0):
        self.read_calls.append((request, value, index, length, timeout))
        last = self.writes[-1]
        frame = decode_frame(last)
        if (frame.command, frame.request) == CMD_FIRMWARE_VERSION:
            version = self.fw_versions.pop(0) if len(self.fw_versions) > 1 else self.fw_versions[0]
            return make_response(last, self.status, version.to_bytes(2, "big"))
        return make_response(last, self.status)

    @property
    def is_open(self) -> bool:
        return self._is_open

    # -- Helpers ---------------------------------------------------------------

    @property
    def frames(self):
        """Decoded frames written so far."""
        return [decode_frame(w) for w in self.writes]

    @property
    def opcodes(self):
        return [(f.command, f.request) for f in self.frames]


@pytest.fixture(autouse=True)
def sleeps():
    """Never really sleep; expose the mocks for timing assertions.

    retry.py only needs ``time.sleep``, so its whole ``time`` reference is
    swapped out; spacing sleeps and retry sleeps land on separate mocks.
    """
    with patch("naga.transport.time.sleep") as transport_sleep, \
         patch("naga.retry.time") as retry_time:
        yield SimpleNamespace(transport=transport_sleep, retry=retry_time.sleep)


@pytest.fixture
def defaults(monkeypatch) -> Settings:
    """Built-in settings, independent of the user's config file and env."""
    monkeypatch.delenv("NAGA_BACKEND", raising=False)
    monkeypatch.delenv("NAGA_USB_TIMEOUT_MS", raising=False)
    return Settings({})


@pytest.fixture
def fake() -> FakeNaga:
    return FakeNaga()


@pytest.fixture
def classic(fake, defaults) -> NagaDevice:
    """Classic Naga session (legacy sensor, no thumb grid)."""
    return NagaDevice(fake, NAGA_PID_CLASSIC, defaults)


@pytest.fixture
def naga2014(fake, defaults) -> NagaDevice:
    """Naga 2014 session (extended sensor, thumb grid)."""
    return NagaDevice(fake, NAGA_PID_2014, defaults)
