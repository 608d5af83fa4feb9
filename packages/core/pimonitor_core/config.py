"""Persistent monitor settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 1
CONFIG_ENV = "PIMONITOR_CONFIG"

DEFAULT_INTERVAL_MS = 500
DEFAULT_WEB_PORT = 8080


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = DEFAULT_WEB_PORT
    enable_cors: bool = True
    static_path: str | None = "static"
    max_connections: int = 100

    def bind_address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class StreamConfig:
    interval_ms: int = DEFAULT_INTERVAL_MS
    buffer_depth: int = 100
    on_error: str = "stop"


@dataclass
class CapabilityConfig:
    gpio: bool = True
    gpu: bool = True


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    keep_files: int = 7
    file_logging: bool = False


@dataclass
class MonitorConfig:
    config_version: int = CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    capabilities: CapabilityConfig = field(default_factory=CapabilityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def config_root() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "PiMonitor"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "PiMonitor"
    return Path.home() / ".config" / "pimonitor"


def config_path() -> Path:
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override).expanduser()
    return config_root() / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _clamp_int(value: Any, low: int, high: int, default: int) -> int:
    try:
        return max(low, min(high, int(value)))
    except (TypeError, ValueError):
        return default


def _normalize_server(cfg: MonitorConfig) -> None:
    cfg.server.port = _clamp_int(cfg.server.port, 1, 65535, DEFAULT_WEB_PORT)
    cfg.server.max_connections = _clamp_int(cfg.server.max_connections, 1, 10000, 100)
    cfg.server.host = str(cfg.server.host or "0.0.0.0")
    cfg.server.enable_cors = bool(cfg.server.enable_cors)


def _normalize_stream(cfg: MonitorConfig) -> None:
    cfg.stream.interval_ms = _clamp_int(cfg.stream.interval_ms, 50, 60000, DEFAULT_INTERVAL_MS)
    cfg.stream.buffer_depth = _clamp_int(cfg.stream.buffer_depth, 1, 10000, 100)
    if cfg.stream.on_error not in ("stop", "skip"):
        cfg.stream.on_error = "stop"


def _normalize_logging(cfg: MonitorConfig) -> None:
    level = str(cfg.logging.level).upper()
    cfg.logging.level = level if level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL") else "WARNING"
    cfg.logging.keep_files = _clamp_int(cfg.logging.keep_files, 2, 365, 7)


def load_config(path: Path | None = None) -> MonitorConfig:
    path = path or config_path()
    if not path.exists():
        return MonitorConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return MonitorConfig()
    if not isinstance(data, dict):
        return MonitorConfig()

    cfg = MonitorConfig(
        config_version=CONFIG_VERSION,
        server=_merge(ServerConfig, data.get("server", {})),
        stream=_merge(StreamConfig, data.get("stream", {})),
        capabilities=_merge(CapabilityConfig, data.get("capabilities", {})),
        logging=_merge(LoggingConfig, data.get("logging", {})),
    )

    _normalize_server(cfg)
    _normalize_stream(cfg)
    _normalize_logging(cfg)
    return cfg


def save_config(cfg: MonitorConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
