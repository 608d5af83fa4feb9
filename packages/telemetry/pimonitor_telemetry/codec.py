"""JSON wire codec for snapshots."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

from .errors import CodecError
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


def _gpio_to_dict(gpio: GpioStatus) -> dict[str, Any]:
    return {
        "available_pins": list(gpio.available_pins),
        "pin_states": {str(pin): state.value for pin, state in sorted(gpio.pin_states.items())},
        "pin_functions": {str(pin): fn.value for pin, fn in sorted(gpio.pin_functions.items())},
        "gpio_available": gpio.gpio_available,
    }


def _temperature_to_dict(temperature: TemperatureInfo) -> dict[str, Any]:
    return {
        "cpu_celsius": temperature.cpu_celsius,
        "gpu_celsius": temperature.gpu_celsius,
        "thermal_zones": dict(temperature.thermal_zones),
        "is_throttling": temperature.is_throttling,
    }


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "timestamp": snapshot.timestamp,
        "cpu": asdict(snapshot.cpu),
        "memory": asdict(snapshot.memory),
        "storage": [asdict(s) for s in snapshot.storage],
        "network": [asdict(n) for n in snapshot.network],
        "temperature": _temperature_to_dict(snapshot.temperature),
        "system": asdict(snapshot.system),
    }
    payload["cpu"]["core_usage"] = list(snapshot.cpu.core_usage)
    for entry in payload["network"]:
        entry["ipv4_addresses"] = list(entry["ipv4_addresses"])
        entry["ipv6_addresses"] = list(entry["ipv6_addresses"])
    if snapshot.gpio is not None:
        payload["gpio"] = _gpio_to_dict(snapshot.gpio)
    return payload


def encode_snapshot(snapshot: Snapshot, indent: int | None = None) -> str:
    return json.dumps(snapshot_to_dict(snapshot), indent=indent, ensure_ascii=False)


def _gpio_from_dict(raw: dict[str, Any]) -> GpioStatus:
    return GpioStatus(
        available_pins=tuple(int(p) for p in raw.get("available_pins", [])),
        pin_states={int(k): PinState(v) for k, v in raw.get("pin_states", {}).items()},
        pin_functions={int(k): PinFunction(v) for k, v in raw.get("pin_functions", {}).items()},
        gpio_available=bool(raw.get("gpio_available", False)),
    )


def snapshot_from_dict(data: dict[str, Any]) -> Snapshot:
    try:
        cpu = dict(data["cpu"])
        cpu["core_usage"] = tuple(cpu["core_usage"])
        cpu["load_average"] = LoadAverage(**cpu["load_average"])

        memory = dict(data["memory"])
        memory["swap"] = SwapInfo(**memory["swap"])
        memory["breakdown"] = MemoryBreakdown(**memory["breakdown"])

        network = []
        for raw in data["network"]:
            entry = dict(raw)
            entry["ipv4_addresses"] = tuple(entry["ipv4_addresses"])
            entry["ipv6_addresses"] = tuple(entry["ipv6_addresses"])
            network.append(NetworkInfo(**entry))

        temperature = dict(data["temperature"])
        temperature["thermal_zones"] = dict(temperature["thermal_zones"])

        return Snapshot(
            timestamp=int(data["timestamp"]),
            cpu=CpuInfo(**cpu),
            memory=MemoryInfo(**memory),
            storage=tuple(StorageInfo(**s) for s in data["storage"]),
            network=tuple(network),
            temperature=TemperatureInfo(**temperature),
            system=SystemInfo(**data["system"]),
            gpio=_gpio_from_dict(data["gpio"]) if "gpio" in data else None,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise CodecError(f"malformed snapshot payload: {exc}") from exc


def decode_snapshot(text: str) -> Snapshot:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CodecError(f"snapshot payload is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise CodecError("snapshot payload must be a JSON object")
    return snapshot_from_dict(data)
