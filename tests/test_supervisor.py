"""Tests for the watcher supervisor."""

from __future__ import annotations

import threading

from conftest import EARFUN_CARD, XM5_CARD
from fakes import (
    BlockingStream,
    FakeLinkGraph,
    FakeProfileStore,
    FakeProvisioner,
    RecordingRunner,
    ScriptedStream,
    SleepRecorder,
)
from models import PROFILE_A2DP, PROFILE_HFP, EnsureProfileAndWire, WireFallback
from reconcile import Reconciler
from supervisor import WatcherSupervisor
from watcher import DeviceWatcher


def _runner(registry, store, graph):
    return RecordingRunner(
        registry,
        store,
        Reconciler(graph, registry.boundary_filter()),
        provisioner=FakeProvisioner(),
        sleep=SleepRecorder(),
    )


def _supervisor(registry, profiles=None, streams=None):
    store = FakeProfileStore(profiles)
    graph = FakeLinkGraph()
    runner = _runner(registry, store, graph)
    watchers = []
    for device in registry.bluetooth_devices():
        stream = (streams or {}).get(device.name, ScriptedStream())
        watchers.append(DeviceWatcher(device, registry, _runner(registry, store, graph), stream, sleep=SleepRecorder()))
    return WatcherSupervisor(registry, watchers, runner, join_timeout=2.0), runner, store, graph


def test_initial_wiring_prefers_primary(registry) -> None:
    sup, runner, store, graph = _supervisor(registry, {XM5_CARD: PROFILE_A2DP, EARFUN_CARD: PROFILE_HFP})

    action = sup.initial_wiring()

    assert action == EnsureProfileAndWire(registry.get("xm5"), PROFILE_A2DP, "xm5-stereo")
    assert store.set_calls == []
    assert graph.edges == set(registry.edges_for("xm5-stereo"))


def test_initial_wiring_uses_secondary_when_primary_off(registry) -> None:
    sup, _, _, graph = _supervisor(registry, {XM5_CARD: "off", EARFUN_CARD: PROFILE_HFP})

    action = sup.initial_wiring()

    assert action == EnsureProfileAndWire(registry.get("earfun"), PROFILE_HFP, "earfun-hfp")
    assert graph.edges == set(registry.edges_for("earfun-hfp"))


def test_initial_wiring_falls_back_to_usb(registry) -> None:
    sup, runner, _, graph = _supervisor(registry, {})

    action = sup.initial_wiring()

    assert isinstance(action, WireFallback)
    assert graph.edges == set(registry.edges_for("usb"))


def test_initial_wiring_leaves_unhandled_bluetooth_profile_alone(registry) -> None:
    sup, _, _, graph = _supervisor(registry, {EARFUN_CARD: PROFILE_A2DP})

    action = sup.initial_wiring()

    assert isinstance(action, WireFallback)
    assert graph.ops == []


def test_one_watcher_exit_stops_all(registry) -> None:
    blocking = BlockingStream()
    sup, _, _, _ = _supervisor(registry, {}, streams={"xm5": blocking, "earfun": ScriptedStream()})

    code = sup.run(initial=False)

    assert code == 1
    assert sup.exited_watcher == "earfun"
    assert blocking.stopped


def test_request_stop_exits_cleanly(registry) -> None:
    streams = {"xm5": BlockingStream(), "earfun": BlockingStream()}
    sup, _, _, _ = _supervisor(registry, {}, streams=streams)

    timer = threading.Timer(0.2, sup.request_stop)
    timer.start()
    try:
        code = sup.run(initial=False)
    finally:
        timer.cancel()

    assert code == 0
    assert sup.exited_watcher is None
    assert all(s.stopped for s in streams.values())
