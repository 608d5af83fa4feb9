"""Typed snapshot models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class LoadAverage:
    one_minute: float = 0.0
    five_minutes: float = 0.0
    fifteen_minutes: float = 0.0


@dataclass(frozen=True)
class CpuInfo:
    model: str
    cores: int
    architecture: str
    frequency_mhz: int | None
    usage_percent: float
    core_usage: tuple[float, ...]
    governor: str | None
    load_average: LoadAverage


@dataclass(frozen=True)
class SwapInfo:
    total_bytes: int = 0
    used_bytes: int = 0
    free_bytes: int = 0


@dataclass(frozen=True)
class MemoryBreakdown:
    buffers_bytes: int = 0
    cached_bytes: int = 0
    shared_bytes: int = 0


@dataclass(frozen=True)
class MemoryInfo:
    total_bytes: int
    available_bytes: int
    used_bytes: int
    usage_percent: float
    swap: SwapInfo = field(default_factory=SwapInfo)
    breakdown: MemoryBreakdown = field(default_factory=MemoryBreakdown)


@dataclass(frozen=True)
class StorageInfo:
    device: str
    mount_point: str
    filesystem: str
    total_bytes: int
    available_bytes: int
    used_bytes: int
    usage_percent: float


@dataclass(frozen=True)
class NetworkInfo:
    interface: str
    is_up: bool
    mac_address: str | None
    ipv4_addresses: tuple[str, ...]
    ipv6_addresses: tuple[str, ...]
    tx_bytes: int
    rx_bytes: int
    tx_packets: int
    rx_packets: int
    tx_errors: int
    rx_errors: int


@dataclass(frozen=True)
class TemperatureInfo:
    cpu_celsius: float | None = None
    gpu_celsius: float | None = None
    thermal_zones: Mapping[str, float] = field(default_factory=dict)
    is_throttling: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "thermal_zones", MappingProxyType(dict(self.thermal_zones)))


@dataclass(frozen=True)
class SystemInfo:
    hostname: str
    os_name: str
    os_version: str
    kernel_version: str
    uptime_seconds: int
    boot_time: int
    process_count: int


class PinState(str, Enum):
    LOW = "Low"
    HIGH = "High"
    INPUT = "Input"
    UNKNOWN = "Unknown"


class PinFunction(str, Enum):
    INPUT = "Input"
    OUTPUT = "Output"
    PWM = "Pwm"
    SPI = "Spi"
    I2C = "I2c"
    UART = "Uart"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class GpioStatus:
    available_pins: tuple[int, ...] = ()
    pin_states: Mapping[int, PinState] = field(default_factory=dict)
    pin_functions: Mapping[int, PinFunction] = field(default_factory=dict)
    gpio_available: bool = False

    def __post_init__(self) -> None:
        # Snapshots are shared across subscribers; maps stay read-only.
        object.__setattr__(self, "pin_states", MappingProxyType(dict(self.pin_states)))
        object.__setattr__(self, "pin_functions", MappingProxyType(dict(self.pin_functions)))


@dataclass(frozen=True)
class Snapshot:
    """One fully assembled point-in-time record of host state.

    ``timestamp`` is milliseconds since the epoch. ``gpio`` is ``None`` when the
    GPIO capability is disabled, in which case it is left off the wire entirely.
    """

    timestamp: int
    cpu: CpuInfo
    memory: MemoryInfo
    storage: tuple[StorageInfo, ...]
    network: tuple[NetworkInfo, ...]
    temperature: TemperatureInfo
    system: SystemInfo
    gpio: GpioStatus | None = None
