"""Tests for the pulsectl card/virtual-device backend against a fake Pulse."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

try:
    import pulsectl
except OSError:  # libpulse is not installed on this host
    pytest.skip("libpulse not available", allow_module_level=True)

from backend import PulseCardBackend


def _card(name: str, profile: str = ""):
    active = SimpleNamespace(name=profile) if profile else None
    return SimpleNamespace(name=name, profile_active=active)


class FakePulse:
    instances: list = []

    def __init__(self, client_name: str) -> None:
        self.client_name = client_name
        self.cards = [_card("bluez_card.80_99_E7_43_87_E0", "a2dp-sink")]
        self.sinks = [SimpleNamespace(name="alsa_output.speaker")]
        self.sources = []
        self.loaded = []
        self.profile_calls = []
        self.fail = False
        self.closed = False
        FakePulse.instances.append(self)

    def _check(self) -> None:
        if self.fail:
            raise pulsectl.PulseError("connection lost")

    def card_list(self):
        self._check()
        return list(self.cards)

    def card_profile_set(self, card, profile: str) -> None:
        self._check()
        self.profile_calls.append((card.name, profile))

    def sink_list(self):
        self._check()
        return list(self.sinks)

    def source_list(self):
        self._check()
        return list(self.sources)

    def module_load(self, name: str, args: str) -> int:
        self._check()
        self.loaded.append((name, args))
        return len(self.loaded)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_pulse(monkeypatch):
    FakePulse.instances = []
    monkeypatch.setattr(pulsectl, "Pulse", FakePulse)
    return FakePulse


def test_get_active_profile(fake_pulse) -> None:
    backend = PulseCardBackend("test-client")

    assert backend.get_active_profile("bluez_card.80_99_E7_43_87_E0") == "a2dp-sink"
    assert backend.get_active_profile("bluez_card.missing") is None
    assert backend.get_active_profile("") is None
    assert fake_pulse.instances[0].client_name == "test-client"
    assert len(fake_pulse.instances) == 1


def test_card_without_active_profile(fake_pulse) -> None:
    backend = PulseCardBackend()
    backend._pulse_connect().cards = [_card("bluez_card.idle")]

    assert backend.get_active_profile("bluez_card.idle") is None


def test_pulse_error_drops_connection(fake_pulse) -> None:
    backend = PulseCardBackend()
    backend._pulse_connect().fail = True

    assert backend.get_active_profile("bluez_card.80_99_E7_43_87_E0") is None
    assert fake_pulse.instances[0].closed

    assert backend.get_active_profile("bluez_card.80_99_E7_43_87_E0") == "a2dp-sink"
    assert len(fake_pulse.instances) == 2


def test_set_active_profile(fake_pulse) -> None:
    backend = PulseCardBackend()

    assert backend.set_active_profile("bluez_card.80_99_E7_43_87_E0", "headset-head-unit")
    assert not backend.set_active_profile("bluez_card.missing", "headset-head-unit")
    assert fake_pulse.instances[0].profile_calls == [("bluez_card.80_99_E7_43_87_E0", "headset-head-unit")]


def test_set_active_profile_failure(fake_pulse) -> None:
    backend = PulseCardBackend()
    backend._pulse_connect().fail = True

    assert not backend.set_active_profile("bluez_card.80_99_E7_43_87_E0", "off")


def test_ensure_virtual_devices_create_only_missing(fake_pulse) -> None:
    backend = PulseCardBackend(virtual_sink="virtual-sink", virtual_mic="virtual-mic")
    pulse = backend._pulse_connect()
    pulse.sinks.append(SimpleNamespace(name="virtual-sink"))

    backend.ensure_virtual_sink()
    backend.ensure_virtual_source()

    assert len(pulse.loaded) == 1
    module, args = pulse.loaded[0]
    assert module == "module-null-sink"
    assert "sink_name=virtual-mic" in args
    assert "media.class=Audio/Source/Virtual" in args


def test_ensure_virtual_sink_loads_null_sink(fake_pulse) -> None:
    backend = PulseCardBackend()

    backend.ensure_virtual_sink()

    assert fake_pulse.instances[0].loaded == [
        ("module-null-sink", "media.class=Audio/Sink sink_name=virtual-sink channel_map=stereo")
    ]


def test_ensure_virtual_sink_failure_raises(fake_pulse) -> None:
    backend = PulseCardBackend()
    backend._pulse_connect().fail = True

    with pytest.raises(RuntimeError, match="virtual-sink"):
        backend.ensure_virtual_sink()
