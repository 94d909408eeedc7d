# backend.py
from __future__ import annotations

import logging
from typing import Optional

import pulsectl


_LOGGER = logging.getLogger(__name__)


class PulseCardBackend:
    """
    Card profiles and virtual null-sinks through pipewire-pulse.

    One instance per thread: a pulsectl connection must not be shared between
    watchers. A failed call drops the connection so the next call reconnects.
    """

    SINK_MODULE_ARGS = "media.class=Audio/Sink sink_name={name} channel_map=stereo"
    MIC_MODULE_ARGS = "media.class=Audio/Source/Virtual sink_name={name} channel_map=front-left,front-right"

    def __init__(
        self,
        pulse_client_name: str = "bt-autoroute",
        virtual_sink: str = "virtual-sink",
        virtual_mic: str = "virtual-mic",
    ) -> None:
        self._pulse_client_name = pulse_client_name
        self._pulse: Optional[pulsectl.Pulse] = None
        self.virtual_sink = virtual_sink
        self.virtual_mic = virtual_mic

    def _pulse_connect(self) -> pulsectl.Pulse:
        if self._pulse is None:
            self._pulse = pulsectl.Pulse(self._pulse_client_name)
        return self._pulse

    def close(self) -> None:
        if self._pulse is not None:
            try:
                self._pulse.close()
            except pulsectl.PulseError as e:
                _LOGGER.debug("Pulse close failed: %s", e)
        self._pulse = None

    def _find_card(self, pulse: pulsectl.Pulse, card_name: str):
        return next((c for c in pulse.card_list() if c.name == card_name), None)

    # --- profile store --------------------------------------------------------

    def get_active_profile(self, card_name: str) -> Optional[str]:
        if not card_name:
            return None
        try:
            card = self._find_card(self._pulse_connect(), card_name)
        except pulsectl.PulseError as e:
            _LOGGER.warning("Cannot list cards: %s", e)
            self.close()
            return None
        if card is None:
            return None
        active = getattr(card, "profile_active", None)
        name = getattr(active, "name", "") if active is not None else ""
        return name.strip() or None

    def set_active_profile(self, card_name: str, profile: str) -> bool:
        try:
            pulse = self._pulse_connect()
            card = self._find_card(pulse, card_name)
            if card is None:
                _LOGGER.error("Card %s not found; cannot set profile %s", card_name, profile)
                return False
            pulse.card_profile_set(card, profile)
        except pulsectl.PulseError as e:
            _LOGGER.error("Failed to set card profile %s on %s: %s", profile, card_name, e)
            self.close()
            return False
        return True

    # --- virtual devices ------------------------------------------------------

    def ensure_virtual_sink(self) -> None:
        self._ensure_null_sink(self.virtual_sink, self.SINK_MODULE_ARGS, sources=False)

    def ensure_virtual_source(self) -> None:
        self._ensure_null_sink(self.virtual_mic, self.MIC_MODULE_ARGS, sources=True)

    def _ensure_null_sink(self, name: str, args_template: str, sources: bool) -> None:
        try:
            pulse = self._pulse_connect()
            existing = pulse.source_list() if sources else pulse.sink_list()
            if any(s.name == name for s in existing):
                return
            kind = "source" if sources else "sink"
            _LOGGER.info("Creating virtual %s '%s'...", kind, name)
            pulse.module_load("module-null-sink", args_template.format(name=name))
        except pulsectl.PulseError as e:
            self.close()
            raise RuntimeError(f"Failed to ensure '{name}' via pipewire-pulse: {e}") from e
