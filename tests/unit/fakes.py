"""Test doubles shared by the unit tests."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Sequence

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from pimonitor_telemetry import (
    CollectionError,
    CpuInfo,
    GpioStatus,
    HostProbe,
    IdentityFacts,
    InterfaceFacts,
    LoadAverage,
    MemoryFacts,
    MemoryInfo,
    MountFacts,
    NetworkInfo,
    PinFunction,
    PinState,
    Snapshot,
    StorageInfo,
    SwapFacts,
    SystemInfo,
    TemperatureInfo,
)

GIB = 1024**3

PI_IDENTITY = IdentityFacts(
    hostname="testpi",
    os_name="Debian GNU/Linux",
    os_version="12",
    kernel_version="6.1.0-rpi7-rpi-v8",
    machine="aarch64",
)


class FakeProbe(HostProbe):
    """Scripted probe: per-core values, files by path, command output by argv."""

    def __init__(
        self,
        cores: Sequence[float] = (10.0, 20.0, 30.0, 40.0),
        memory: MemoryFacts | None = MemoryFacts(total=8 * GIB, available=6 * GIB, buffers=1, cached=2, shared=3),
        swap: SwapFacts | None = SwapFacts(total=GIB, used=GIB // 4, free=GIB - GIB // 4),
        mounts: Sequence[MountFacts] = (),
        interfaces: Sequence[InterfaceFacts] = (),
        sensors: dict[str, list[float]] | None = None,
        files: dict[str, str] | None = None,
        commands: dict[tuple[str, ...], str] | None = None,
        identity: IdentityFacts = PI_IDENTITY,
        uptime: float | None = 3600.0,
        processes: int | None = 123,
        loadavg: tuple[float, float, float] | None = (0.1, 0.2, 0.3),
        gpu: float | None = None,
    ) -> None:
        self.cores = list(cores)
        self.memory = memory
        self.swap = swap
        self._mounts = list(mounts)
        self._interfaces = list(interfaces)
        self.sensors = dict(sensors or {})
        self.files = dict(files or {})
        self.commands = dict(commands or {})
        self._identity = identity
        self.uptime = uptime
        self.processes = processes
        self.loadavg = loadavg
        self.gpu = gpu
        self.refreshes = 0
        self.closed = False

    def refresh(self) -> None:
        self.refreshes += 1

    def per_core_usage(self) -> list[float]:
        return list(self.cores)

    def cpu_model(self) -> str | None:
        return "Cortex-A72"

    def load_average(self) -> tuple[float, float, float] | None:
        return self.loadavg

    def virtual_memory(self) -> MemoryFacts | None:
        return self.memory

    def swap_memory(self) -> SwapFacts | None:
        return self.swap

    def mounts(self) -> list[MountFacts]:
        return list(self._mounts)

    def interfaces(self) -> list[InterfaceFacts]:
        return list(self._interfaces)

    def sensor_temperatures(self) -> dict[str, list[float]]:
        return dict(self.sensors)

    def identity(self) -> IdentityFacts:
        return self._identity

    def uptime_seconds(self) -> float | None:
        return self.uptime

    def process_count(self) -> int | None:
        return self.processes

    def read_text(self, path: str) -> str | None:
        return self.files.get(path)

    def run_command(self, args: Sequence[str]) -> str | None:
        return self.commands.get(tuple(args))

    def gpu_temperature(self) -> float | None:
        return self.gpu

    def close(self) -> None:
        self.closed = True


class ScriptedAssembler:
    """Stands in for ``SnapshotAssembler``: replays snapshots or raises queued errors."""

    def __init__(self, results: Sequence[Snapshot | Exception] = (), default: Snapshot | None = None) -> None:
        self.results = list(results)
        self.default = default
        self.calls = 0
        self.closed = False

    def collect(self) -> Snapshot:
        self.calls += 1
        if self.results:
            item = self.results.pop(0)
        elif self.default is not None:
            item = self.default
        else:
            item = make_snapshot(timestamp=1_700_000_000_000 + self.calls)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


def collection_error() -> CollectionError:
    return CollectionError("No CPU information available")


def make_snapshot(timestamp: int = 1_700_000_000_000, gpio: GpioStatus | None = None) -> Snapshot:
    return Snapshot(
        timestamp=timestamp,
        cpu=CpuInfo(
            model="Cortex-A72",
            cores=4,
            architecture="aarch64",
            frequency_mhz=1500,
            usage_percent=25.0,
            core_usage=(10.0, 20.0, 30.0, 40.0),
            governor="ondemand",
            load_average=LoadAverage(0.5, 0.25, 0.1),
        ),
        memory=MemoryInfo(
            total_bytes=8 * GIB,
            available_bytes=6 * GIB,
            used_bytes=2 * GIB,
            usage_percent=25.0,
        ),
        storage=(
            StorageInfo(
                device="/dev/mmcblk0p2",
                mount_point="/",
                filesystem="ext4",
                total_bytes=32 * GIB,
                available_bytes=24 * GIB,
                used_bytes=8 * GIB,
                usage_percent=25.0,
            ),
        ),
        network=(
            NetworkInfo(
                interface="eth0",
                is_up=True,
                mac_address="dc:a6:32:00:00:01",
                ipv4_addresses=("192.168.1.20",),
                ipv6_addresses=("fe80::1",),
                tx_bytes=1000,
                rx_bytes=2000,
                tx_packets=10,
                rx_packets=20,
                tx_errors=0,
                rx_errors=1,
            ),
        ),
        temperature=TemperatureInfo(
            cpu_celsius=48.5,
            gpu_celsius=47.0,
            thermal_zones={"cpu": 48.5, "gpu": 47.0, "zone1": 45.0},
            is_throttling=False,
        ),
        system=SystemInfo(
            hostname="testpi",
            os_name="Debian GNU/Linux",
            os_version="12",
            kernel_version="6.1.0-rpi7-rpi-v8",
            uptime_seconds=3600,
            boot_time=1_699_996_400,
            process_count=123,
        ),
        gpio=gpio,
    )


def make_gpio_status() -> GpioStatus:
    return GpioStatus(
        available_pins=(17, 18),
        pin_states={17: PinState.HIGH, 18: PinState.INPUT},
        pin_functions={17: PinFunction.OUTPUT, 18: PinFunction.INPUT},
        gpio_available=True,
    )


class FakeTransport:
    """In-memory transport; feed inbound text with ``push`` and end it with ``disconnect``."""

    def __init__(self, fail_on_send: bool = False) -> None:
        self.inbound: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[str] = []
        self.fail_on_send = fail_on_send
        self.closed = False
        self.sent_event = asyncio.Event()

    def push(self, text: str) -> None:
        self.inbound.put_nowait(text)

    def disconnect(self) -> None:
        self.inbound.put_nowait(None)

    async def receive_text(self) -> str | None:
        return await self.inbound.get()

    async def send_text(self, text: str) -> None:
        if self.fail_on_send:
            raise ConnectionResetError("peer went away")
        self.sent.append(text)
        self.sent_event.set()

    async def close(self) -> None:
        self.closed = True
