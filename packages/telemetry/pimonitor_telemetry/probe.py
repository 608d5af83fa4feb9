"""Host probe contract and the psutil-backed implementation.

The probe owns every OS-specific primitive: psutil counters, files under ``/proc``
and ``/sys``, and vendor tools such as ``vcgencmd``. It hands back raw facts only;
interpretation (fallback order, sanity bands, derived values) belongs to the
snapshot assembler.
"""

from __future__ import annotations

import logging
import platform
import socket
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Sequence, TypeVar

from .errors import StartupError

try:
    import psutil
except Exception:  # pragma: no cover
    psutil = None

logger = logging.getLogger("pimonitor.telemetry")

T = TypeVar("T")


@dataclass(frozen=True)
class MemoryFacts:
    total: int
    available: int
    buffers: int = 0
    cached: int = 0
    shared: int = 0


@dataclass(frozen=True)
class SwapFacts:
    total: int = 0
    used: int = 0
    free: int = 0


@dataclass(frozen=True)
class MountFacts:
    device: str
    mount_point: str
    filesystem: str
    total: int
    free: int


@dataclass(frozen=True)
class InterfaceFacts:
    name: str
    is_up: bool
    mac_address: str | None = None
    ipv4: tuple[str, ...] = ()
    ipv6: tuple[str, ...] = ()
    bytes_sent: int = 0
    bytes_recv: int = 0
    packets_sent: int = 0
    packets_recv: int = 0
    errout: int = 0
    errin: int = 0


@dataclass(frozen=True)
class IdentityFacts:
    hostname: str = "unknown"
    os_name: str = "unknown"
    os_version: str = "unknown"
    kernel_version: str = "unknown"
    machine: str = ""


class HostProbe(ABC):
    """Query surface over the host. ``refresh`` takes one coherent reading."""

    @abstractmethod
    def refresh(self) -> None: ...

    @abstractmethod
    def per_core_usage(self) -> list[float]: ...

    @abstractmethod
    def cpu_model(self) -> str | None: ...

    @abstractmethod
    def load_average(self) -> tuple[float, float, float] | None: ...

    @abstractmethod
    def virtual_memory(self) -> MemoryFacts | None: ...

    @abstractmethod
    def swap_memory(self) -> SwapFacts | None: ...

    @abstractmethod
    def mounts(self) -> list[MountFacts]: ...

    @abstractmethod
    def interfaces(self) -> list[InterfaceFacts]: ...

    @abstractmethod
    def sensor_temperatures(self) -> dict[str, list[float]]: ...

    @abstractmethod
    def identity(self) -> IdentityFacts: ...

    @abstractmethod
    def uptime_seconds(self) -> float | None: ...

    @abstractmethod
    def process_count(self) -> int | None: ...

    @abstractmethod
    def read_text(self, path: str) -> str | None: ...

    @abstractmethod
    def run_command(self, args: Sequence[str]) -> str | None: ...

    def gpu_temperature(self) -> float | None:
        return None

    def close(self) -> None:
        pass


class _GpuAdapter:
    def poll(self) -> float | None:
        return None

    def close(self) -> None:
        pass


class _NvmlGpuAdapter(_GpuAdapter):
    def __init__(self) -> None:
        import pynvml  # type: ignore

        self._nvml = pynvml
        pynvml.nvmlInit()

    def poll(self) -> float | None:
        nvml = self._nvml
        if nvml.nvmlDeviceGetCount() < 1:
            return None
        h = nvml.nvmlDeviceGetHandleByIndex(0)
        return float(nvml.nvmlDeviceGetTemperature(h, nvml.NVML_TEMPERATURE_GPU))

    def close(self) -> None:
        try:
            self._nvml.nvmlShutdown()
        except Exception:
            logger.debug("nvml shutdown failed", exc_info=True)


def _build_gpu_adapter() -> _GpuAdapter:
    try:
        return _NvmlGpuAdapter()
    except Exception:
        return _GpuAdapter()


def _guard(what: str, fn: Callable[[], T], default: T) -> T:
    try:
        return fn()
    except Exception as exc:
        logger.debug("probe read %s failed: %s", what, exc)
        return default


def _read_identity() -> IdentityFacts:
    os_name = platform.system() or "unknown"
    os_version = platform.release() or "unknown"
    try:
        release = platform.freedesktop_os_release()
        os_name = release.get("NAME", os_name)
        os_version = release.get("VERSION_ID", os_version)
    except (OSError, AttributeError):
        if os_name == "Darwin" and platform.mac_ver()[0]:
            os_name, os_version = "macOS", platform.mac_ver()[0]
    return IdentityFacts(
        hostname=socket.gethostname() or "unknown",
        os_name=os_name,
        os_version=os_version,
        kernel_version=platform.release() or "unknown",
        machine=platform.machine(),
    )


def _read_cpu_model(probe: HostProbe) -> str | None:
    cpuinfo = probe.read_text("/proc/cpuinfo")
    if cpuinfo:
        fields: dict[str, str] = {}
        for line in cpuinfo.splitlines():
            key, sep, value = line.partition(":")
            if sep and value.strip():
                fields.setdefault(key.strip().lower(), value.strip())
        for key in ("model name", "hardware", "model", "cpu model", "processor"):
            value = fields.get(key)
            # "processor" is a bare index on x86.
            if value and not value.isdigit():
                return value
    return platform.processor() or None


def _busy_and_total(times) -> tuple[float, float]:
    total = float(sum(times))
    # Linux folds guest time into user already.
    total -= getattr(times, "guest", 0.0) + getattr(times, "guest_nice", 0.0)
    idle = times.idle + getattr(times, "iowait", 0.0)
    return max(total - idle, 0.0), total


def core_usage_between(previous: Sequence, current: Sequence) -> list[float]:
    """Per-core busy percentage between two ``cpu_times(percpu=True)`` readings.

    The baseline belongs to the caller, never to the calling thread.
    """
    usage: list[float] = []
    for index, now in enumerate(current):
        busy, total = _busy_and_total(now)
        if index < len(previous):
            prev_busy, prev_total = _busy_and_total(previous[index])
            busy, total = busy - prev_busy, total - prev_total
        usage.append(min(max(busy / total * 100.0, 0.0), 100.0) if total > 0 else 0.0)
    return usage


@dataclass
class _Reading:
    per_core: list[float] = field(default_factory=list)
    memory: MemoryFacts | None = None
    swap: SwapFacts | None = None
    mounts: list[MountFacts] = field(default_factory=list)
    interfaces: list[InterfaceFacts] = field(default_factory=list)
    sensors: dict[str, list[float]] = field(default_factory=dict)
    processes: int | None = None
    taken_at: float = 0.0


class PsutilProbe(HostProbe):
    """Production probe: psutil counters plus direct file and tool access."""

    def __init__(self, gpu_enabled: bool = True, command_timeout_s: float = 2.0) -> None:
        if psutil is None:
            raise StartupError("psutil is required for host probing")
        try:
            self._prev_cpu_times = list(psutil.cpu_times(percpu=True))
            self._boot_time = float(psutil.boot_time())
            self._identity = _read_identity()
        except Exception as exc:
            raise StartupError(f"host probe initialisation failed: {exc}") from exc
        self._cpu_model = _read_cpu_model(self)
        self._gpu = _build_gpu_adapter() if gpu_enabled else _GpuAdapter()
        self._command_timeout_s = command_timeout_s
        self._missing_commands: set[str] = set()
        self._reading = _Reading()

    def refresh(self) -> None:
        self._reading = _Reading(
            per_core=_guard("cpu", self._read_per_core, []),
            memory=_guard("memory", self._read_memory, None),
            swap=_guard("swap", self._read_swap, None),
            mounts=_guard("mounts", self._read_mounts, []),
            interfaces=_guard("interfaces", self._read_interfaces, []),
            sensors=_guard("sensors", self._read_sensors, {}),
            processes=_guard("processes", lambda: len(psutil.pids()), None),
            taken_at=time.time(),
        )

    def _read_per_core(self) -> list[float]:
        current = list(psutil.cpu_times(percpu=True))
        usage = core_usage_between(self._prev_cpu_times, current)
        self._prev_cpu_times = current
        return usage

    @staticmethod
    def _read_memory() -> MemoryFacts:
        vm = psutil.virtual_memory()
        return MemoryFacts(
            total=int(vm.total),
            available=int(vm.available),
            buffers=int(getattr(vm, "buffers", 0)),
            cached=int(getattr(vm, "cached", 0)),
            shared=int(getattr(vm, "shared", 0)),
        )

    @staticmethod
    def _read_swap() -> SwapFacts:
        sw = psutil.swap_memory()
        return SwapFacts(total=int(sw.total), used=int(sw.used), free=int(sw.free))

    @staticmethod
    def _read_mounts() -> list[MountFacts]:
        out: list[MountFacts] = []
        seen: set[str] = set()
        for part in psutil.disk_partitions(all=False):
            if part.mountpoint in seen:
                continue
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                continue
            seen.add(part.mountpoint)
            out.append(
                MountFacts(
                    device=part.device,
                    mount_point=part.mountpoint,
                    filesystem=part.fstype,
                    total=int(usage.total),
                    free=int(usage.free),
                )
            )
        return out

    @staticmethod
    def _read_interfaces() -> list[InterfaceFacts]:
        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()
        # nowrap keeps per-interface counters monotonic across 32-bit wraps.
        counters = psutil.net_io_counters(pernic=True, nowrap=True)

        out: list[InterfaceFacts] = []
        for name in sorted(set(stats) | set(counters)):
            ipv4: list[str] = []
            ipv6: list[str] = []
            mac = None
            for addr in addrs.get(name, []):
                if addr.family == socket.AF_INET:
                    ipv4.append(addr.address)
                elif addr.family == socket.AF_INET6:
                    ipv6.append(addr.address.split("%", 1)[0])
                elif addr.family == psutil.AF_LINK:
                    mac = addr.address or None
            io = counters.get(name)
            st = stats.get(name)
            out.append(
                InterfaceFacts(
                    name=name,
                    is_up=bool(st.isup) if st else False,
                    mac_address=mac,
                    ipv4=tuple(ipv4),
                    ipv6=tuple(ipv6),
                    bytes_sent=io.bytes_sent if io else 0,
                    bytes_recv=io.bytes_recv if io else 0,
                    packets_sent=io.packets_sent if io else 0,
                    packets_recv=io.packets_recv if io else 0,
                    errout=io.errout if io else 0,
                    errin=io.errin if io else 0,
                )
            )
        return out

    @staticmethod
    def _read_sensors() -> dict[str, list[float]]:
        reader = getattr(psutil, "sensors_temperatures", None)
        if reader is None:
            return {}
        temps = reader() or {}
        return {
            name: [float(e.current) for e in entries if e.current is not None]
            for name, entries in temps.items()
        }

    def per_core_usage(self) -> list[float]:
        return list(self._reading.per_core)

    def cpu_model(self) -> str | None:
        return self._cpu_model

    def load_average(self) -> tuple[float, float, float] | None:
        return _guard("loadavg", lambda: tuple(float(v) for v in psutil.getloadavg()), None)  # type: ignore[return-value]

    def virtual_memory(self) -> MemoryFacts | None:
        return self._reading.memory

    def swap_memory(self) -> SwapFacts | None:
        return self._reading.swap

    def mounts(self) -> list[MountFacts]:
        return list(self._reading.mounts)

    def interfaces(self) -> list[InterfaceFacts]:
        return list(self._reading.interfaces)

    def sensor_temperatures(self) -> dict[str, list[float]]:
        return dict(self._reading.sensors)

    def identity(self) -> IdentityFacts:
        return self._identity

    def uptime_seconds(self) -> float | None:
        now = self._reading.taken_at or time.time()
        return max(now - self._boot_time, 0.0)

    def process_count(self) -> int | None:
        return self._reading.processes

    def gpu_temperature(self) -> float | None:
        return _guard("gpu", self._gpu.poll, None)

    def read_text(self, path: str) -> str | None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError):
            return None

    def run_command(self, args: Sequence[str]) -> str | None:
        if not args or args[0] in self._missing_commands:
            return None
        try:
            result = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=self._command_timeout_s,
                check=False,
            )
        except FileNotFoundError:
            self._missing_commands.add(args[0])
            return None
        except (subprocess.TimeoutExpired, OSError) as exc:
            logger.debug("command %s failed: %s", args[0], exc)
            return None
        if result.returncode != 0:
            return None
        return result.stdout

    def close(self) -> None:
        self._gpu.close()
