"""Plain-text rendering for the ``snapshot`` and ``info`` commands."""

from __future__ import annotations

from datetime import datetime, timezone

from pimonitor_telemetry import Snapshot

GIB = 1024.0**3
MIB = 1024.0**2


def _gib(value: int) -> str:
    return f"{value / GIB:.1f} GB"


def render_snapshot(snapshot: Snapshot) -> str:
    taken = datetime.fromtimestamp(snapshot.timestamp / 1000.0, tz=timezone.utc)
    cpu = snapshot.cpu
    mem = snapshot.memory
    temp = snapshot.temperature
    lines = [
        f"System Snapshot ({taken:%Y-%m-%d %H:%M:%S} UTC)",
        "=" * 42,
        "",
        "CPU:",
        f"  Model: {cpu.model}",
        f"  Cores: {cpu.cores}",
        f"  Usage: {cpu.usage_percent:.1f}%",
        f"  Frequency: {cpu.frequency_mhz} MHz" if cpu.frequency_mhz is not None else "  Frequency: unknown",
    ]
    if cpu.governor:
        lines.append(f"  Governor: {cpu.governor}")
    load = cpu.load_average
    lines += [
        f"  Load: {load.one_minute:.2f}, {load.five_minutes:.2f}, {load.fifteen_minutes:.2f}",
        "",
        "Memory:",
        f"  Total: {_gib(mem.total_bytes)}",
        f"  Available: {_gib(mem.available_bytes)}",
        f"  Usage: {mem.usage_percent:.1f}%",
        f"  Swap: {_gib(mem.swap.used_bytes)} used",
        "",
        "Temperature:",
    ]
    if temp.cpu_celsius is not None:
        lines.append(f"  CPU: {temp.cpu_celsius:.1f}°C")
    if temp.gpu_celsius is not None:
        lines.append(f"  GPU: {temp.gpu_celsius:.1f}°C")
    lines.append("  Status: THROTTLING" if temp.is_throttling else "  Status: Normal")
    lines.append("")

    if snapshot.storage:
        lines.append("Storage:")
        for disk in snapshot.storage:
            lines.append(f"  {disk.mount_point}: {_gib(disk.total_bytes)} total, {disk.usage_percent:.1f}% used")
        lines.append("")

    if snapshot.network:
        lines.append("Network:")
        for iface in snapshot.network:
            state = "UP" if iface.is_up else "DOWN"
            lines.append(
                f"  {iface.interface}: {state} (TX: {iface.tx_bytes / MIB:.1f} MB, RX: {iface.rx_bytes / MIB:.1f} MB)"
            )
        lines.append("")

    system = snapshot.system
    lines += [
        "System:",
        f"  Hostname: {system.hostname}",
        f"  OS: {system.os_name} {system.os_version}",
        f"  Uptime: {system.uptime_seconds} seconds",
        f"  Processes: {system.process_count}",
    ]
    return "\n".join(lines)


def render_info(snapshot: Snapshot, gpio_enabled: bool) -> str:
    system = snapshot.system
    cpu = snapshot.cpu
    lines = [
        "PiMonitor System Information",
        "=" * 28,
        "",
        "System Details:",
        f"  Hostname: {system.hostname}",
        f"  OS: {system.os_name} {system.os_version}",
        f"  Kernel: {system.kernel_version}",
        f"  Uptime: {system.uptime_seconds} seconds",
        "",
        "Hardware:",
        f"  CPU: {cpu.model} ({cpu.cores} cores)",
        f"  Architecture: {cpu.architecture}",
        f"  Memory: {_gib(snapshot.memory.total_bytes)} total",
    ]
    if snapshot.temperature.cpu_celsius is not None:
        lines.append(f"  CPU Temperature: {snapshot.temperature.cpu_celsius:.1f}°C")
    lines += ["", "Storage:"]
    for disk in snapshot.storage:
        lines.append(f"  {disk.mount_point}: {_gib(disk.total_bytes)} total, {disk.usage_percent:.1f}% used")
    lines += ["", "Network Interfaces:"]
    for iface in snapshot.network:
        lines.append(f"  {iface.interface}: {'UP' if iface.is_up else 'DOWN'}")

    lines += ["", "GPIO:"]
    if not gpio_enabled:
        lines.append("  GPIO support: disabled")
    elif snapshot.gpio is not None and snapshot.gpio.gpio_available:
        lines.append(f"  Available pins: {len(snapshot.gpio.available_pins)}")
        lines.append("  GPIO support: enabled")
    else:
        lines.append("  GPIO support: not available")
    return "\n".join(lines)
