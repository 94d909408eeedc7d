# supervisor.py
"""Initial wiring pass and lifecycle of the per-device watcher threads."""
from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence

from models import Action, EnsureProfileAndWire, Noop, ProfileObserved, WireFallback
from policy import ActionRunner, decide
from registry import DeviceRegistry
from watcher import DeviceWatcher


_LOGGER = logging.getLogger(__name__)


class WatcherSupervisor:
    def __init__(
        self,
        registry: DeviceRegistry,
        watchers: Sequence[DeviceWatcher],
        runner: ActionRunner,
        join_timeout: float = 5.0,
    ) -> None:
        self._registry = registry
        self._watchers = list(watchers)
        self._runner = runner
        self._join_timeout = join_timeout
        self._threads: List[threading.Thread] = []
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._exited: Optional[str] = None
        self._stop_requested = False

    @property
    def exited_watcher(self) -> Optional[str]:
        return self._exited

    def initial_wiring(self) -> Action:
        """
        Query every Bluetooth device's live profile once, in rank order, and
        wire the first one the priority rule lets through. With none, the USB
        fallback is considered.
        """
        _LOGGER.info("Performing initial wiring...")
        for device in self._registry.bluetooth_devices():
            profile = self._runner.live_profile_of(device)
            action = decide(ProfileObserved(profile), device, self._registry, self._runner.live_profile_of)
            if isinstance(action, EnsureProfileAndWire):
                _LOGGER.info("%s card found (%s), active profile: %s", device.name, device.card, profile)
                self._runner.run(action)
                return action
            if isinstance(action, Noop):
                _LOGGER.info(action.reason)

        action = WireFallback(reason="no Bluetooth device wired at startup")
        self._runner.run(action)
        return action

    def _run_watcher(self, watcher: DeviceWatcher) -> None:
        try:
            watcher.run()
        except Exception:
            _LOGGER.exception("Watcher %s crashed", watcher.name)
        finally:
            with self._lock:
                if self._exited is None and not self._stop_requested:
                    self._exited = watcher.name
            self._done.set()

    def start(self) -> None:
        for w in self._watchers:
            _LOGGER.info("Starting %s watcher...", w.name)
            t = threading.Thread(target=self._run_watcher, args=(w,), name=f"watch-{w.name}", daemon=True)
            self._threads.append(t)
            t.start()
        _LOGGER.info("Watchers started: %s", ", ".join(w.name for w in self._watchers))

    def request_stop(self) -> None:
        with self._lock:
            self._stop_requested = True
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """True once a watcher has exited or a stop was requested."""
        return self._done.wait(timeout)

    def stop(self) -> None:
        _LOGGER.info("Cleaning up watcher processes...")
        for w in self._watchers:
            try:
                w.stop()
            except (RuntimeError, OSError) as e:
                _LOGGER.warning("Stopping %s watcher failed: %s", w.name, e)
        for t in self._threads:
            t.join(timeout=self._join_timeout)
            if t.is_alive():
                _LOGGER.warning("Thread %s still running after %.1fs", t.name, self._join_timeout)
        _LOGGER.info("Cleanup complete")

    def run(self, initial: bool = True) -> int:
        if initial:
            self.initial_wiring()
        if not self._watchers:
            _LOGGER.error("No Bluetooth devices configured; nothing to watch")
            return 1

        self.start()
        self.wait()
        if self._exited is not None:
            _LOGGER.warning("Watcher %s exited; stopping all watchers", self._exited)
        self.stop()
        return 1 if self._exited is not None else 0
