"""Snapshot assembly with partial-success degradation."""

from __future__ import annotations

import logging
import re
import threading
import time
from typing import Callable

from .errors import CollectionError
from .gpio import GpioProvider, build_gpio_provider
from .models import (
    CpuInfo,
    GpioStatus,
    LoadAverage,
    MemoryBreakdown,
    MemoryInfo,
    NetworkInfo,
    Snapshot,
    StorageInfo,
    SwapInfo,
    SystemInfo,
    TemperatureInfo,
)
from .probe import HostProbe

logger = logging.getLogger("pimonitor.telemetry")

CPUFREQ_PATH = "/sys/devices/system/cpu/cpu{index}/cpufreq/{name}"
THERMAL_ZONE_PATH = "/sys/class/thermal/thermal_zone{index}/temp"
SECONDARY_ZONES = range(1, 10)

PRIMARY_BAND_C = (0.0, 100.0)
SECONDARY_BAND_C = (-20.0, 125.0)

# get_throttled bits: 0 under-voltage, 1 arm frequency capped, 2 throttled, 3 soft temp limit.
THROTTLE_MASK = 0x000E

SENSOR_FAMILIES = ("coretemp", "cpu_thermal", "k10temp", "acpitz")

_MEASURE_TEMP_RE = re.compile(r"temp=([-\d.]+)'C")
_THROTTLED_RE = re.compile(r"throttled=0x([0-9a-fA-F]+)")


def _percent(used: int, total: int) -> float:
    return (used / total) * 100.0 if total > 0 else 0.0


def _in_band(celsius: float | None, band: tuple[float, float]) -> float | None:
    if celsius is None:
        return None
    low, high = band
    return celsius if low <= celsius <= high else None


def _parse_int(text: str | None) -> int | None:
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError:
        return None


class SnapshotAssembler:
    """Builds one immutable ``Snapshot`` per call to ``collect``.

    Only the CPU core count and the memory total are structural: without them
    ``collect`` raises ``CollectionError``. Everything else degrades to an empty
    or absent value.
    """

    def __init__(
        self,
        probe: HostProbe,
        gpio: GpioProvider | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._probe = probe
        self._gpio = gpio
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def create(cls, gpio_enabled: bool = True, gpu_enabled: bool = True) -> "SnapshotAssembler":
        from .probe import PsutilProbe

        probe = PsutilProbe(gpu_enabled=gpu_enabled)
        return cls(probe, gpio=build_gpio_provider(gpio_enabled))

    @property
    def gpio_enabled(self) -> bool:
        return self._gpio is not None

    def collect(self) -> Snapshot:
        with self._lock:
            self._probe.refresh()
            now = self._clock()
            return Snapshot(
                timestamp=int(now * 1000),
                cpu=self._collect_cpu(),
                memory=self._collect_memory(),
                storage=self._collect_storage(),
                network=self._collect_network(),
                temperature=self._collect_temperature(),
                system=self._collect_system(now),
                gpio=self._collect_gpio(),
            )

    def close(self) -> None:
        with self._lock:
            self._probe.close()
            if self._gpio is not None:
                self._gpio.close()

    # CPU

    def _collect_cpu(self) -> CpuInfo:
        core_usage = tuple(min(max(float(v), 0.0), 100.0) for v in self._probe.per_core_usage())
        if not core_usage:
            raise CollectionError("No CPU information available")
        cores = len(core_usage)
        return CpuInfo(
            model=self._probe.cpu_model() or "unknown",
            cores=cores,
            architecture=self._read_architecture(),
            frequency_mhz=self._read_frequency_mhz(cores),
            usage_percent=sum(core_usage) / cores,
            core_usage=core_usage,
            governor=self._read_governor(cores),
            load_average=self._read_load_average(),
        )

    def _read_architecture(self) -> str:
        cpuinfo = self._probe.read_text("/proc/cpuinfo")
        if cpuinfo:
            for line in cpuinfo.splitlines():
                if line.lower().startswith("architecture"):
                    _, _, arch = line.partition(":")
                    # ARM kernels report a bare revision number ("8") here.
                    if arch.strip() and not arch.strip().isdigit():
                        return arch.strip()
            if "aarch64" in cpuinfo or "ARMv8" in cpuinfo:
                return "aarch64"
            if "arm" in cpuinfo:
                return "arm"
            if "x86_64" in cpuinfo:
                return "x86_64"
        return self._probe.identity().machine or "unknown"

    def _read_cpufreq(self, name: str, cores: int) -> str | None:
        for index in range(cores):
            value = self._probe.read_text(CPUFREQ_PATH.format(index=index, name=name))
            if value and value.strip():
                return value.strip()
        return None

    def _read_frequency_mhz(self, cores: int) -> int | None:
        for name in ("scaling_cur_freq", "cpuinfo_cur_freq"):
            khz = _parse_int(self._read_cpufreq(name, cores))
            if khz is not None and khz > 0:
                return khz // 1000
        return None

    def _read_governor(self, cores: int) -> str | None:
        return self._read_cpufreq("scaling_governor", cores)

    def _read_load_average(self) -> LoadAverage:
        raw = self._probe.read_text("/proc/loadavg")
        values: tuple[float, ...] | None = None
        if raw:
            try:
                values = tuple(float(p) for p in raw.split()[:3])
            except ValueError:
                values = None
        if not values or len(values) < 3:
            values = self._probe.load_average()
        if not values:
            return LoadAverage()
        one, five, fifteen = (max(float(v), 0.0) for v in values[:3])
        return LoadAverage(one_minute=one, five_minutes=five, fifteen_minutes=fifteen)

    # Memory

    def _collect_memory(self) -> MemoryInfo:
        vm = self._probe.virtual_memory()
        if vm is None or vm.total <= 0:
            raise CollectionError("No memory information available")
        total = int(vm.total)
        available = min(max(int(vm.available), 0), total)
        used = total - available

        sw = self._probe.swap_memory()
        swap = SwapInfo(total_bytes=sw.total, used_bytes=sw.used, free_bytes=sw.free) if sw else SwapInfo()

        breakdown = self._read_meminfo_breakdown()
        if breakdown is None:
            breakdown = MemoryBreakdown(buffers_bytes=vm.buffers, cached_bytes=vm.cached, shared_bytes=vm.shared)

        return MemoryInfo(
            total_bytes=total,
            available_bytes=available,
            used_bytes=used,
            usage_percent=_percent(used, total),
            swap=swap,
            breakdown=breakdown,
        )

    def _read_meminfo_breakdown(self) -> MemoryBreakdown | None:
        meminfo = self._probe.read_text("/proc/meminfo")
        if not meminfo:
            return None
        values = {"Buffers": 0, "Cached": 0, "Shmem": 0}
        for line in meminfo.splitlines():
            key, sep, rest = line.partition(":")
            if not sep or key not in values:
                continue
            parts = rest.split()
            if parts and parts[0].isdigit():
                values[key] = int(parts[0]) * 1024
        return MemoryBreakdown(
            buffers_bytes=values["Buffers"],
            cached_bytes=values["Cached"],
            shared_bytes=values["Shmem"],
        )

    # Storage and network

    def _collect_storage(self) -> tuple[StorageInfo, ...]:
        out: list[StorageInfo] = []
        seen: set[str] = set()
        for mount in self._probe.mounts():
            if mount.mount_point in seen or mount.total < 0:
                continue
            seen.add(mount.mount_point)
            total = int(mount.total)
            available = min(max(int(mount.free), 0), total)
            used = total - available
            out.append(
                StorageInfo(
                    device=mount.device,
                    mount_point=mount.mount_point,
                    filesystem=mount.filesystem,
                    total_bytes=total,
                    available_bytes=available,
                    used_bytes=used,
                    usage_percent=_percent(used, total),
                )
            )
        return tuple(out)

    def _collect_network(self) -> tuple[NetworkInfo, ...]:
        return tuple(
            NetworkInfo(
                interface=iface.name,
                is_up=iface.is_up,
                mac_address=iface.mac_address,
                ipv4_addresses=tuple(iface.ipv4),
                ipv6_addresses=tuple(iface.ipv6),
                tx_bytes=iface.bytes_sent,
                rx_bytes=iface.bytes_recv,
                tx_packets=iface.packets_sent,
                rx_packets=iface.packets_recv,
                tx_errors=iface.errout,
                rx_errors=iface.errin,
            )
            for iface in sorted(self._probe.interfaces(), key=lambda i: i.name)
        )

    # Temperature

    def _read_zone_celsius(self, index: int) -> float | None:
        millideg = _parse_int(self._probe.read_text(THERMAL_ZONE_PATH.format(index=index)))
        return millideg / 1000.0 if millideg is not None else None

    def _sensor_cpu_celsius(self) -> float | None:
        temps = self._probe.sensor_temperatures()
        for name in SENSOR_FAMILIES:
            for value in temps.get(name, []):
                accepted = _in_band(value, PRIMARY_BAND_C)
                if accepted is not None:
                    return accepted
        return None

    def _vcgencmd_gpu_celsius(self) -> float | None:
        output = self._probe.run_command(["vcgencmd", "measure_temp"])
        match = _MEASURE_TEMP_RE.search(output or "")
        if not match:
            return None
        try:
            return float(match.group(1))
        except ValueError:
            return None

    def _read_throttling(self) -> bool:
        output = self._probe.run_command(["vcgencmd", "get_throttled"])
        match = _THROTTLED_RE.search(output or "")
        if not match:
            return False
        return (int(match.group(1), 16) & THROTTLE_MASK) != 0

    def _collect_temperature(self) -> TemperatureInfo:
        zones: dict[str, float] = {}

        cpu = _in_band(self._read_zone_celsius(0), PRIMARY_BAND_C)
        if cpu is None:
            cpu = self._sensor_cpu_celsius()
        if cpu is not None:
            zones["cpu"] = cpu

        gpu = _in_band(self._vcgencmd_gpu_celsius(), PRIMARY_BAND_C)
        if gpu is None:
            gpu = _in_band(self._probe.gpu_temperature(), PRIMARY_BAND_C)
        if gpu is not None:
            zones["gpu"] = gpu

        for index in SECONDARY_ZONES:
            value = _in_band(self._read_zone_celsius(index), SECONDARY_BAND_C)
            if value is not None:
                zones[f"zone{index}"] = value

        return TemperatureInfo(
            cpu_celsius=cpu,
            gpu_celsius=gpu,
            thermal_zones=zones,
            is_throttling=self._read_throttling(),
        )

    # System and GPIO

    def _collect_system(self, now: float) -> SystemInfo:
        ident = self._probe.identity()
        uptime = int(self._probe.uptime_seconds() or 0)
        return SystemInfo(
            hostname=ident.hostname,
            os_name=ident.os_name,
            os_version=ident.os_version,
            kernel_version=ident.kernel_version,
            uptime_seconds=uptime,
            boot_time=max(int(now) - uptime, 0),
            process_count=int(self._probe.process_count() or 0),
        )

    def _collect_gpio(self) -> GpioStatus | None:
        if self._gpio is None:
            return None
        try:
            return self._gpio.read_status()
        except Exception as exc:
            logger.warning("GPIO read failed: %s", exc)
            return GpioStatus(gpio_available=False)
