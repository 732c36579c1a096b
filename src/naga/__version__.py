"""naga-linux version information."""

__version__ = "0.3.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - Frame codec, pyusb control transport, firmware probe
# 0.2.0 - Naga 2014 support (8200 DPI extended sensor, thumb-grid LED),
#         per-axis resolution, session-owned packet spacing
# 0.3.0 - hidapi feature-report backend, config.json tuning, unified retry
#         policy for probe and reads, protocol anomaly observer
