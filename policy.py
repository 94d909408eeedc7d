# policy.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from models import (
    PROFILE_A2DP,
    PROFILE_HFP,
    TRANSPORT_ACTIVE,
    TRANSPORT_UNKNOWN,
    Action,
    Device,
    DeviceConnected,
    DeviceDisconnected,
    EnsureProfileAndWire,
    Event,
    Noop,
    ProfileObserved,
    TransportStateChanged,
    WatcherState,
    WireFallback,
    is_active_profile,
    profile_family,
)
from reconcile import Reconciler
from registry import USB_MODE, DeviceRegistry


_LOGGER = logging.getLogger(__name__)

PROFILE_SETTLE_S = 0.4
TRANSPORT_SETTLE_S = 0.3

LiveProfileOf = Callable[[Device], Optional[str]]


def active_blocker(device: Device, registry: DeviceRegistry, live_profile_of: LiveProfileOf) -> Optional[Device]:
    """First higher-priority device that currently reports a non-off profile."""
    for other in registry.higher_priority_than(device):
        if is_active_profile(live_profile_of(other)):
            return other
    return None


def fallback_target(registry: DeviceRegistry, live_profile_of: LiveProfileOf) -> Optional[str]:
    for d in registry.devices:
        if d.card and is_active_profile(live_profile_of(d)):
            return None
    return USB_MODE


def decide(
    event: Event,
    device: Device,
    registry: DeviceRegistry,
    live_profile_of: LiveProfileOf,
    state: Optional[WatcherState] = None,
) -> Action:
    state = state or WatcherState()

    if isinstance(event, DeviceDisconnected):
        return WireFallback(reason=f"{device.name} disconnected")

    if isinstance(event, DeviceConnected):
        return _on_connected(device, registry, live_profile_of, state)

    if isinstance(event, TransportStateChanged):
        return _on_transport(event, device, registry, live_profile_of, state)

    if isinstance(event, ProfileObserved):
        return _on_observed(event, device, registry, live_profile_of)

    return Noop(reason=f"unhandled event {event!r}")


def _ensure(device: Device, profile: str, registry: DeviceRegistry) -> Action:
    mode = registry.mode_for(device, profile)
    if mode is None:
        return Noop(reason=f"{device.name} has no wiring for {profile}")
    return EnsureProfileAndWire(device=device, profile=profile, mode=mode)


def _on_connected(
    device: Device,
    registry: DeviceRegistry,
    live_profile_of: LiveProfileOf,
    state: WatcherState,
) -> Action:
    blocker = active_blocker(device, registry, live_profile_of)
    if blocker is not None:
        return Noop(reason=f"{blocker.name} has an active profile; not overriding it")

    remembered = state.last_applied_profile
    if remembered and device.supports(remembered):
        return _ensure(device, remembered, registry)
    return _ensure(device, device.default_profile(), registry)


def _on_transport(
    event: TransportStateChanged,
    device: Device,
    registry: DeviceRegistry,
    live_profile_of: LiveProfileOf,
    state: WatcherState,
) -> Action:
    live = profile_family(live_profile_of(device))
    if live in (PROFILE_A2DP, PROFILE_HFP):
        profile = live
    elif event.state == TRANSPORT_ACTIVE:
        profile = PROFILE_A2DP
    else:
        profile = PROFILE_HFP

    if profile == state.last_resolved_profile:
        return Noop(reason=f"profile still {profile}")

    blocker = active_blocker(device, registry, live_profile_of)
    if blocker is not None:
        return Noop(reason=f"{blocker.name} has an active profile; not overriding it")

    return _ensure(device, profile, registry)


def _on_observed(
    event: ProfileObserved,
    device: Device,
    registry: DeviceRegistry,
    live_profile_of: LiveProfileOf,
) -> Action:
    profile = profile_family(event.profile)
    if not is_active_profile(profile):
        return Noop(reason=f"{device.name} card not present or profile 'off'")
    if profile not in (PROFILE_A2DP, PROFILE_HFP):
        return Noop(reason=f"{device.name} profile '{profile}' is not handled")

    blocker = active_blocker(device, registry, live_profile_of)
    if blocker is not None:
        return Noop(reason=f"{blocker.name} has an active profile; not overriding it")

    return _ensure(device, profile, registry)


def note_decision(state: WatcherState, event: Event, action: Action, ok: bool = True) -> None:
    if isinstance(event, DeviceDisconnected):
        state.last_transport_state = TRANSPORT_UNKNOWN
        state.last_resolved_profile = None
        return

    if isinstance(event, TransportStateChanged):
        state.last_transport_state = event.state

    if isinstance(action, EnsureProfileAndWire):
        # a failed wiring must be retried on the next transport change
        state.last_resolved_profile = action.profile if ok else None
    elif isinstance(event, DeviceConnected):
        # preempted by a higher-priority device: the next transport change must not be suppressed
        state.last_resolved_profile = None


class ActionRunner:
    """
    Executes policy actions against the profile store, the virtual device
    provisioner and the reconciler. Failures are logged and reported as False;
    nothing here raises into the watcher loop.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        store,
        reconciler: Reconciler,
        provisioner=None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._registry = registry
        self._store = store
        self._reconciler = reconciler
        self._provisioner = provisioner
        self._sleep = sleep

    def live_profile_of(self, device: Device) -> Optional[str]:
        if not device.card:
            return None
        return self._store.get_active_profile(device.card)

    def run(self, action: Action, state: Optional[WatcherState] = None) -> bool:
        if isinstance(action, Noop):
            _LOGGER.info("No change: %s", action.reason)
            return True

        if isinstance(action, WireFallback):
            return self.wire_fallback()

        if isinstance(action, EnsureProfileAndWire):
            ok = self.ensure_profile_and_wire(action.device, action.profile, action.mode)
            if ok and state is not None:
                state.last_applied_profile = action.profile
            return ok

        _LOGGER.error("Unknown action %r", action)
        return False

    def ensure_profile_and_wire(self, device: Device, profile: str, mode: str) -> bool:
        current = self.live_profile_of(device)
        _LOGGER.info(
            "Current card profile for %s: %s (want: %s)", device.card, current or "<none>", profile
        )

        if profile_family(current) != profile:
            _LOGGER.info("Updating card profile: %s -> %s", current or "<none>", profile)
            if not self._store.set_active_profile(device.card, profile):
                _LOGGER.error("Failed to set card profile %s on %s", profile, device.card)
                return False
            # pipewire rebuilds the card's nodes asynchronously
            self._sleep(PROFILE_SETTLE_S)

        return self.wire_mode(mode)

    def wire_fallback(self) -> bool:
        target = fallback_target(self._registry, self.live_profile_of)
        if target is None:
            _LOGGER.info("Some Bluetooth profile still active; not wiring USB fallback")
            return True
        _LOGGER.info("No Bluetooth profiles active; wiring USB fallback")
        return self.wire_mode(target)

    def wire_mode(self, mode: str) -> bool:
        _LOGGER.info("Wiring mode '%s'", mode)
        try:
            if self._provisioner is not None:
                self._provisioner.ensure_virtual_sink()
                self._provisioner.ensure_virtual_source()
            result = self._reconciler.reconcile(self._registry.edges_for(mode))
        except (RuntimeError, KeyError) as e:
            _LOGGER.error("Wiring mode '%s' failed: %s", mode, e)
            return False

        if not result.ok:
            _LOGGER.error("Wiring mode '%s' incomplete: %d link operation(s) failed", mode, len(result.failed))
            return False
        return True
