# watcher.py
from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

from bt_events import PropertiesChangedParser, iter_events
from models import (
    Action,
    Device,
    DeviceConnected,
    DeviceDisconnected,
    Event,
    TransportStateChanged,
    WatcherState,
)
from policy import TRANSPORT_SETTLE_S, ActionRunner, decide, note_decision
from registry import DeviceRegistry


_LOGGER = logging.getLogger(__name__)


class DeviceWatcher:
    """
    Event loop for one Bluetooth device. Owns its WatcherState exclusively;
    the only things shared with sibling watchers are the registry and the
    live system state reached through the runner.
    """

    def __init__(
        self,
        device: Device,
        registry: DeviceRegistry,
        runner: ActionRunner,
        stream,
        sleep: Callable[[float], None] = time.sleep,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self.device = device
        self.state = WatcherState()
        self._registry = registry
        self._runner = runner
        self._stream = stream
        self._sleep = sleep
        self._on_close = on_close
        self._parser = PropertiesChangedParser(device.transport_prefix)

    @property
    def name(self) -> str:
        return self.device.name

    def handle(self, event: Event) -> Action:
        if isinstance(event, DeviceConnected):
            _LOGGER.info("Bluetooth device CONNECTED")
            # give BlueZ/PipeWire time to create the card and nodes
            self._sleep(self.device.connect_grace)
        elif isinstance(event, DeviceDisconnected):
            _LOGGER.info("Bluetooth device DISCONNECTED")
        elif isinstance(event, TransportStateChanged):
            _LOGGER.info("Transport state changed: %s (path=%s)", event.state, event.path)
            self._sleep(TRANSPORT_SETTLE_S)

        action = decide(event, self.device, self._registry, self._runner.live_profile_of, self.state)
        ok = self._runner.run(action, self.state)
        note_decision(self.state, event, action, ok)
        return action

    def process(self, lines: Iterable[str]) -> None:
        for event in iter_events(lines, self._parser):
            self.handle(event)

    def run(self) -> None:
        _LOGGER.info("Watching BlueZ for %s under %s ...", self.device.name, self.device.object_path)
        _LOGGER.info("   Card name : %s", self.device.card)
        try:
            self.process(self._stream.lines())
        finally:
            if self._on_close is not None:
                self._on_close()
        _LOGGER.warning("Notification stream for %s ended", self.device.name)

    def stop(self) -> None:
        self._stream.stop()
