"""Host telemetry: snapshot model, wire codec, probes, and snapshot assembly."""

from .codec import decode_snapshot, encode_snapshot, snapshot_from_dict, snapshot_to_dict
from .errors import CodecError, CollectionError, GpioError, MonitorError, StartupError
from .gpio import GpioProvider, RpiGpioProvider, UnavailableGpio, build_gpio_provider
from .models import (
    CpuInfo,
    GpioStatus,
    LoadAverage,
    MemoryBreakdown,
    MemoryInfo,
    NetworkInfo,
    PinFunction,
    PinState,
    Snapshot,
    StorageInfo,
    SwapInfo,
    SystemInfo,
    TemperatureInfo,
)
from .assembler import SnapshotAssembler
from .probe import HostProbe, IdentityFacts, InterfaceFacts, MemoryFacts, MountFacts, PsutilProbe, SwapFacts

__all__ = [
    "CodecError",
    "CollectionError",
    "CpuInfo",
    "GpioError",
    "GpioProvider",
    "GpioStatus",
    "HostProbe",
    "IdentityFacts",
    "InterfaceFacts",
    "LoadAverage",
    "MemoryBreakdown",
    "MemoryFacts",
    "MemoryInfo",
    "MonitorError",
    "MountFacts",
    "NetworkInfo",
    "PinFunction",
    "PinState",
    "PsutilProbe",
    "RpiGpioProvider",
    "Snapshot",
    "SnapshotAssembler",
    "StartupError",
    "StorageInfo",
    "SwapFacts",
    "SwapInfo",
    "SystemInfo",
    "TemperatureInfo",
    "UnavailableGpio",
    "build_gpio_provider",
    "decode_snapshot",
    "encode_snapshot",
    "snapshot_from_dict",
    "snapshot_to_dict",
]
