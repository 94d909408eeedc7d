# wire_mode.py
"""Apply one wiring mode's fixed link table between the virtual and physical ports."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from app_meta import LOG_LEVELS, configure_logging, detect_version
from backend import PulseCardBackend
from policy import ActionRunner, active_blocker
from pw_graph import PipeWireLinkGraph
from reconcile import Reconciler
from registry import DeviceRegistry, registry_from_config
from store_config import ConfigError, ConfigStore


_LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bt-wire-mode",
        description="Link virtual-sink/virtual-mic to the ports of one wiring mode.",
    )
    parser.add_argument("mode", nargs="?", help="wiring mode, e.g. usb, xm5-stereo, xm5-hfp, earfun-hfp")
    parser.add_argument("--config", default="", help="path to autoroute.cfg")
    parser.add_argument("--log-level", default=None, choices=LOG_LEVELS, help="log level (default: from config)")
    parser.add_argument(
        "--respect-priority",
        action="store_true",
        help="skip a headset mode while a higher-priority headset has an active profile",
    )
    parser.add_argument("--show", action="store_true", help="print the mode matching the live links and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {detect_version()}")
    return parser


def show_mode(registry: DeviceRegistry, graph: PipeWireLinkGraph) -> int:
    edges = graph.current_edges(registry.boundary_filter())
    mode = registry.mode_for_edges(edges)
    print(mode or "unknown")
    return 0 if mode else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        cfg = ConfigStore(explicit_path=args.config).load()
        configure_logging(args.log_level or cfg.get("Log", "level"))
        registry = registry_from_config(cfg)
    except ConfigError as e:
        configure_logging(args.log_level or "INFO")
        _LOGGER.error("%s", e)
        return 1

    modes = "|".join(registry.mode_names())
    graph = PipeWireLinkGraph()

    if args.show:
        try:
            return show_mode(registry, graph)
        except RuntimeError as e:
            _LOGGER.error("%s", e)
            return 1

    if not args.mode:
        parser.print_usage(sys.stderr)
        _LOGGER.error("Usage: bt-wire-mode {%s}", modes)
        return 1

    if args.mode not in registry.mode_names():
        _LOGGER.error("Unknown mode: %s (expected %s)", args.mode, modes)
        return 1

    backend = PulseCardBackend(
        pulse_client_name="bt-wire-mode",
        virtual_sink=registry.virtual_sink,
        virtual_mic=registry.virtual_mic,
    )
    runner = ActionRunner(registry, backend, Reconciler(graph, registry.boundary_filter()), provisioner=backend)
    try:
        if args.respect_priority:
            device = registry.device_for_mode(args.mode)
            blocker = active_blocker(device, registry, runner.live_profile_of) if device else None
            if blocker is not None:
                _LOGGER.info("%s active; skipping %s to preserve its priority", blocker.name, args.mode)
                return 0
        # link failures are logged per edge and do not change the exit status
        runner.wire_mode(args.mode)
    finally:
        backend.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
