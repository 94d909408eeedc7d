# autoset.py
"""Keep the virtual sink/mic routed to the best available headset."""
from __future__ import annotations

import argparse
import logging
import signal
from typing import List, Optional, Sequence

from app_meta import LOG_LEVELS, configure_logging, detect_version
from backend import PulseCardBackend
from dbus_cli import DbusMonitor
from policy import ActionRunner
from pw_graph import PipeWireLinkGraph
from reconcile import Reconciler
from registry import DeviceRegistry, registry_from_config
from store_config import ConfigError, ConfigStore
from supervisor import WatcherSupervisor
from watcher import DeviceWatcher


_LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bt-autoset", description="Bluetooth/USB audio auto-routing supervisor")
    parser.add_argument("--config", default="", help="path to autoroute.cfg")
    parser.add_argument("--log-level", default=None, choices=LOG_LEVELS, help="log level (default: from config)")
    parser.add_argument(
        "--skip-initial-wiring",
        action="store_true",
        help="start the watchers without the startup wiring pass",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {detect_version()}")
    return parser


def build_runner(registry: DeviceRegistry, client_name: str) -> tuple[ActionRunner, PulseCardBackend]:
    backend = PulseCardBackend(
        pulse_client_name=client_name,
        virtual_sink=registry.virtual_sink,
        virtual_mic=registry.virtual_mic,
    )
    reconciler = Reconciler(PipeWireLinkGraph(), registry.boundary_filter())
    return ActionRunner(registry, backend, reconciler, provisioner=backend), backend


def build_watchers(registry: DeviceRegistry) -> List[DeviceWatcher]:
    watchers: List[DeviceWatcher] = []
    for device in registry.bluetooth_devices():
        runner, backend = build_runner(registry, f"bt-autoroute-{device.name}")
        watchers.append(
            DeviceWatcher(
                device,
                registry,
                runner,
                DbusMonitor(device.object_path),
                on_close=backend.close,
            )
        )
    return watchers


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = ConfigStore(explicit_path=args.config).load()
        configure_logging(args.log_level or cfg.get("Log", "level"))
        registry = registry_from_config(cfg)
    except ConfigError as e:
        configure_logging(args.log_level or "INFO")
        _LOGGER.error("%s", e)
        return 1

    runner, backend = build_runner(registry, "bt-autoroute")
    supervisor = WatcherSupervisor(registry, build_watchers(registry), runner)

    def _on_signal(signum: int, _frame: object) -> None:
        _LOGGER.info("Received %s; stopping", signal.Signals(signum).name)
        supervisor.request_stop()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        return supervisor.run(initial=not args.skip_initial_wiring)
    finally:
        backend.close()


if __name__ == "__main__":
    raise SystemExit(main())
