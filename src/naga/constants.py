"""
Shared protocol constants for Razer Naga mice.

Values come from USB captures of the vendor configuration tool.
Everything the frame codec, the transport and the command sequencer
agree on lives here.
"""

# =========================================================================
# USB identity
# =========================================================================

RAZER_VID = 0x1532

NAGA_PID_CLASSIC = 0x0015
NAGA_PID_EPIC = 0x001F
NAGA_PID_2012 = 0x002E
NAGA_PID_HEX = 0x0036
NAGA_PID_2014 = 0x0040
NAGA_PID_HEX_V2 = 0x0050

# Configuration interface (control transfers are addressed to it)
USB_INTERFACE = 0

# =========================================================================
# Control transfer shape
# =========================================================================

# bmRequestType: direction | class request | interface recipient
REQUEST_TYPE_OUT = 0x21   # LIBUSB_ENDPOINT_OUT | CLASS | INTERFACE
REQUEST_TYPE_IN = 0xA1    # LIBUSB_ENDPOINT_IN  | CLASS | INTERFACE

# bRequest codes.  Numerically SET_CONFIGURATION / CLEAR_FEATURE, which is
# what the HID class calls SET_REPORT / GET_REPORT.
REQUEST_WRITE = 0x09
REQUEST_READ = 0x01

# wValue: feature report, report id 0
COMMAND_VALUE = 0x0300
COMMAND_INDEX = 0

USB_TIMEOUT_MS = 3000

# =========================================================================
# Command frame
# =========================================================================

FRAME_SIZE = 90
FRAME_VALUES_SIZE = 5

# (command id, request id) opcodes
CMD_FIRMWARE_VERSION = (0x0002, 0x0081)
CMD_FREQUENCY = (0x0001, 0x0005)
CMD_LED = (0x0003, 0x0300)
CMD_RESOLUTION_LEGACY = (0x0003, 0x0401)
CMD_RESOLUTION_EXTENDED = (0x0007, 0x0405)

# Response status bytes the firmware uses for "accepted"
STATUS_OK = frozenset({0x00, 0x01, 0x02})

# =========================================================================
# Timing
# =========================================================================

# Minimum gap between control transfers.  Some firmware revisions lose
# sync when packets arrive back to back.
PACKET_SPACING_MS = 25

# Firmware probe: poke the device until it reports a sane version
PROBE_ATTEMPTS = 5
PROBE_DELAY_S = 0.250

# Raw read transfers
READ_ATTEMPTS = 3
READ_DELAY_S = 0.0
