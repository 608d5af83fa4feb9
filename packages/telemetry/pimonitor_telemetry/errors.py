"""Error taxonomy shared by collection, broadcast, and the app boundary."""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for every error this project raises on purpose."""


class StartupError(MonitorError):
    """A probe, capability, or hub could not be constructed."""


class CollectionError(MonitorError):
    """A structural fact (CPU cores, memory total) could not be obtained."""


class GpioError(MonitorError):
    pass


class CodecError(MonitorError):
    pass
