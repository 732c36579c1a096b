"""
naga-linux - Razer Naga configuration for Linux

Drives the vendor control protocol of Razer Naga mice: LED states, scan
frequency and per-axis sensor resolution, pushed to the device as an
ordered sequence of 90-byte command frames.

Usage:
    from naga import NagaDevice, LedState

    with NagaDevice.open(pid=0x0040) as mouse:
        mouse.initialize()
        with mouse.claimed():
            mouse.set_resolution(1800)
            mouse.set_led(1, LedState.OFF)
            mouse.commit()
"""

from naga.__version__ import __version__
from naga.device import NagaDevice
from naga.errors import (
    DeviceBusy,
    DeviceNotResponding,
    InvalidArgument,
    NagaError,
    ProtocolAnomaly,
    RetriesExhausted,
    TransportError,
)
from naga.models import KNOWN_MODELS, NagaModel, model_for_pid
from naga.resolution import ResolutionMapping, SensorGeneration
from naga.state import Axis, ConfigSnapshot, Frequency, Led, LedState

__all__ = [
    # Version
    "__version__",
    # Session
    "NagaDevice",
    # Models
    "KNOWN_MODELS",
    "NagaModel",
    "model_for_pid",
    "SensorGeneration",
    # Configuration values
    "Axis",
    "ConfigSnapshot",
    "Frequency",
    "Led",
    "LedState",
    "ResolutionMapping",
    # Errors
    "NagaError",
    "TransportError",
    "ProtocolAnomaly",
    "DeviceNotResponding",
    "DeviceBusy",
    "InvalidArgument",
    "RetriesExhausted",
]
