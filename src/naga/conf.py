"""Driver tuning settings.

Config is read from ~/.config/naga/config.json (XDG-compliant); only the
``"usb"`` section is consulted.  Device configuration itself (LEDs,
resolution, frequency) is never stored; it is re-applied on every
initialization.

Usage:
    from naga.conf import settings

    settings.backend            # "auto", "pyusb" or "hidapi"
    settings.usb_timeout_ms     # per-transfer timeout
    settings.packet_spacing_ms  # minimum gap between transfers

Example config.json::

    {"usb": {"backend": "hidapi", "usb_timeout_ms": 1000}}
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Optional

from .constants import (
    PACKET_SPACING_MS,
    PROBE_ATTEMPTS,
    PROBE_DELAY_S,
    READ_ATTEMPTS,
    USB_TIMEOUT_MS,
)

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'naga')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')

BACKENDS = ('auto', 'pyusb', 'hidapi')


def load_config(path: Optional[str] = None) -> dict:
    """Load user config from disk. Returns empty dict on missing/corrupt file."""
    try:
        with open(path or CONFIG_PATH, 'r') as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# =========================================================================
# Settings
# =========================================================================

class Settings:
    """Driver tunables with defaults, config-file values and env overrides.

    Precedence: environment (``NAGA_BACKEND``, ``NAGA_USB_TIMEOUT_MS``) >
    config file ``"usb"`` section > built-in defaults.
    """

    def __init__(self, config: Optional[dict] = None):
        if config is None:
            config = load_config()
        usb = config.get('usb', {})
        self._usb = usb if isinstance(usb, dict) else {}

    def _get(self, key: str, default: Any, cast=int) -> Any:
        value = self._usb.get(key, default)
        try:
            return cast(value)
        except (TypeError, ValueError):
            log.warning("Ignoring invalid config value usb.%s=%r", key, value)
            return default

    @property
    def backend(self) -> str:
        backend = os.environ.get('NAGA_BACKEND') or self._usb.get('backend', 'auto')
        if backend not in BACKENDS:
            log.warning("Unknown USB backend %r, using auto", backend)
            return 'auto'
        return backend

    @property
    def usb_timeout_ms(self) -> int:
        env = os.environ.get('NAGA_USB_TIMEOUT_MS')
        if env:
            try:
                return int(env)
            except ValueError:
                log.warning("Ignoring invalid NAGA_USB_TIMEOUT_MS=%r", env)
        return self._get('usb_timeout_ms', USB_TIMEOUT_MS)

    @property
    def packet_spacing_ms(self) -> int:
        return self._get('packet_spacing_ms', PACKET_SPACING_MS)

    @property
    def probe_attempts(self) -> int:
        return self._get('probe_attempts', PROBE_ATTEMPTS)

    @property
    def probe_delay_s(self) -> float:
        return self._get('probe_delay_s', PROBE_DELAY_S, float)

    @property
    def read_attempts(self) -> int:
        return self._get('read_attempts', READ_ATTEMPTS)


settings = Settings()
