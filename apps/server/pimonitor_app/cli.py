"""CLI entrypoints for the PiMonitor server, one-shot snapshots, and host info."""

from __future__ import annotations

import argparse
import json
import logging
from importlib import metadata
from pathlib import Path

from pimonitor_core import MonitorConfig, load_config
from pimonitor_core.logging_setup import configure_logging, install_crash_hooks
from pimonitor_telemetry import MonitorError, SnapshotAssembler, snapshot_to_dict

from .pretty import render_info, render_snapshot

logger = logging.getLogger("pimonitor.cli")

SNAPSHOT_FORMATS = ("json", "pretty")


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def installed_version() -> str:
    try:
        return metadata.version("pimonitor")
    except Exception:
        return "0.1.0"


def resolve_config(args: argparse.Namespace) -> MonitorConfig:
    """Load the config file, then apply command-line overrides for this run."""
    cfg = load_config(Path(args.config).expanduser() if args.config else None)
    if args.host:
        cfg.server.host = args.host
    if args.port is not None:
        cfg.server.port = max(1, min(65535, args.port))
    if args.interval is not None:
        cfg.stream.interval_ms = max(50, min(60000, args.interval))
    if args.no_gpio:
        cfg.capabilities.gpio = False
    if args.debug:
        cfg.logging.level = "DEBUG"
    elif args.verbose:
        cfg.logging.level = "INFO"

    if getattr(args, "static_dir", None):
        cfg.server.static_path = args.static_dir
    if getattr(args, "no_cors", False):
        cfg.server.enable_cors = False
    if getattr(args, "max_connections", None) is not None:
        cfg.server.max_connections = max(1, args.max_connections)
    return cfg


def _collect_once(cfg: MonitorConfig):
    assembler = SnapshotAssembler.create(gpio_enabled=cfg.capabilities.gpio, gpu_enabled=cfg.capabilities.gpu)
    try:
        return assembler.collect(), assembler.gpio_enabled
    finally:
        assembler.close()


def cmd_serve(args: argparse.Namespace) -> int:
    from .web import serve

    cfg = resolve_config(args)
    logger.info(
        "starting server on %s (interval=%dms cors=%s max_connections=%d gpio=%s)",
        cfg.server.bind_address(),
        cfg.stream.interval_ms,
        cfg.server.enable_cors,
        cfg.server.max_connections,
        cfg.capabilities.gpio,
    )
    serve(cfg, version=installed_version())
    return 0


def cmd_snapshot(args: argparse.Namespace) -> int:
    if args.format not in SNAPSHOT_FORMATS:
        logger.error("unsupported format: %s, use 'json' or 'pretty'", args.format)
        return 2
    cfg = resolve_config(args)
    snapshot, _ = _collect_once(cfg)
    if args.format == "json":
        _print_json(snapshot_to_dict(snapshot))
    else:
        print(render_snapshot(snapshot))
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    cfg = resolve_config(args)
    snapshot, gpio_enabled = _collect_once(cfg)
    print(render_info(snapshot, gpio_enabled))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pimonitor", description="Host metrics monitor with a live web stream")
    parser.add_argument("--version", action="version", version=f"%(prog)s {installed_version()}")
    parser.add_argument("--config", default=None, help="Path to config JSON (default: platform config dir)")
    parser.add_argument("--host", default=None, help="Bind address for the web server")
    parser.add_argument("--port", type=int, default=None, help="Port for the web server")
    parser.add_argument("-i", "--interval", type=int, default=None, help="Collection interval in milliseconds")
    parser.add_argument("--no-gpio", action="store_true", help="Disable GPIO monitoring")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    parser.add_argument("-d", "--debug", action="store_true", help="Log at DEBUG level")
    parser.set_defaults(func=cmd_serve, static_dir=None, no_cors=False, max_connections=None)
    sub = parser.add_subparsers(dest="command")

    serve_cmd = sub.add_parser("serve", help="Run the web server and snapshot stream")
    serve_cmd.add_argument("--static-dir", default=None, help="Directory with index.html and assets")
    serve_cmd.add_argument("--no-cors", action="store_true", help="Disable CORS headers")
    serve_cmd.add_argument("--max-connections", type=int, default=None, help="WebSocket subscriber limit")
    serve_cmd.set_defaults(func=cmd_serve)

    snap_cmd = sub.add_parser("snapshot", help="Collect and print one snapshot")
    snap_cmd.add_argument("-f", "--format", default="json", help="Output format: json or pretty")
    snap_cmd.set_defaults(func=cmd_snapshot)

    info_cmd = sub.add_parser("info", help="Print host identity and hardware summary")
    info_cmd.set_defaults(func=cmd_info)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = load_config(Path(args.config).expanduser() if args.config else None)
    level = "DEBUG" if args.debug else "INFO" if args.verbose else cfg.logging.level
    configure_logging(level=level, keep_files=cfg.logging.keep_files, file_logging=cfg.logging.file_logging)
    if cfg.logging.file_logging:
        install_crash_hooks()

    try:
        return int(args.func(args))
    except MonitorError as exc:
        logger.critical("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
