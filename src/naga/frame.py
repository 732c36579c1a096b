"""
Command frame codec for the Naga configuration protocol.

Every request and every response is one fixed 90-byte frame::

    offset  size  field
    0       1     status      (0 on send; 0/1/2 = accepted on receive)
    1-3     3     padding
    4-5     2     command id  (big-endian)
    6-7     2     request id  (big-endian)
    8-12    5     values      (opcode specific)
    13-87   75    padding
    88      1     checksum    (XOR of bytes 2..87)
    89      1     padding

The codec is pure: it never talks to the device and never rejects a
frame.  Checksum *validation* is left to the caller.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from functools import reduce

from .constants import FRAME_SIZE, FRAME_VALUES_SIZE, STATUS_OK

# Field offsets
OFFSET_STATUS = 0
OFFSET_COMMAND = 4
OFFSET_REQUEST = 6
OFFSET_VALUES = 8
OFFSET_CHECKSUM = 88

# Checksummed span: bytes 2..87 inclusive
CHECKSUM_START = 2
CHECKSUM_END = OFFSET_CHECKSUM


def xor8_checksum(data: bytes) -> int:
    """XOR-reduce *data* to a single byte."""
    return reduce(lambda acc, b: acc ^ b, data, 0)


def frame_checksum(frame: bytes) -> int:
    """Checksum over the protected span of a full frame."""
    return xor8_checksum(frame[CHECKSUM_START:CHECKSUM_END])


def seal_frame(frame: bytes) -> bytes:
    """Return *frame* with its checksum byte recomputed from current content."""
    buf = bytearray(frame)
    buf[OFFSET_CHECKSUM] = frame_checksum(buf)
    return bytes(buf)


def encode_frame(command: int, request: int, values: bytes = b"") -> bytes:
    """Build a sealed 90-byte command frame.

    Args:
        command: 16-bit command id.
        request: 16-bit request (sub-opcode) id.
        values: Up to five payload bytes; shorter payloads are zero-filled.

    Returns:
        The frame, checksum included.
    """
    if len(values) > FRAME_VALUES_SIZE:
        raise ValueError(
            f"Frame carries at most {FRAME_VALUES_SIZE} value bytes, got {len(values)}"
        )
    buf = bytearray(FRAME_SIZE)
    struct.pack_into(">HH", buf, OFFSET_COMMAND, command & 0xFFFF, request & 0xFFFF)
    buf[OFFSET_VALUES:OFFSET_VALUES + len(values)] = values
    return seal_frame(buf)


@dataclass(frozen=True)
class CommandFrame:
    """Structured view of a 90-byte frame."""
    status: int
    command: int
    request: int
    values: bytes
    checksum: int
    computed_checksum: int

    @property
    def checksum_valid(self) -> bool:
        return self.checksum == self.computed_checksum

    @property
    def status_ok(self) -> bool:
        return self.status in STATUS_OK

    def value_be16(self, offset: int = 0) -> int:
        """Big-endian 16-bit integer starting at values[offset]."""
        return struct.unpack_from(">H", self.values, offset)[0]

    def __repr__(self) -> str:
        return (
            f"CommandFrame(command=0x{self.command:04X}, "
            f"request=0x{self.request:04X}, status=0x{self.status:02X}, "
            f"values={self.values.hex(' ')})"
        )


def decode_frame(data: bytes) -> CommandFrame:
    """Reinterpret a 90-byte buffer as a :class:`CommandFrame`."""
    if len(data) != FRAME_SIZE:
        raise ValueError(f"Frame must be {FRAME_SIZE} bytes, got {len(data)}")
    command, request = struct.unpack_from(">HH", data, OFFSET_COMMAND)
    return CommandFrame(
        status=data[OFFSET_STATUS],
        command=command,
        request=request,
        values=bytes(data[OFFSET_VALUES:OFFSET_VALUES + FRAME_VALUES_SIZE]),
        checksum=data[OFFSET_CHECKSUM],
        computed_checksum=frame_checksum(data),
    )
