# registry.py
from __future__ import annotations

import configparser
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from models import (
    CLASS_PRIMARY,
    CLASS_SECONDARY,
    CLASS_USB,
    MODE_STEREO,
    MODE_VOICE,
    PROFILE_A2DP,
    PROFILE_HFP,
    Device,
    RoutingEdge,
)
from reconcile import BoundaryFilter
from store_config import (
    DEVICE_SECTION_PREFIX,
    ConfigError,
    device_sections,
    get_float,
    get_int,
    get_list,
    get_required,
)


USB_MODE = "usb"

_DEVICE_CLASSES = (CLASS_PRIMARY, CLASS_SECONDARY)
_MODES = (MODE_STEREO, MODE_VOICE)


class UnknownModeError(KeyError):
    pass


@dataclass(frozen=True)
class UsbPorts:
    speaker_fl: str
    speaker_fr: str
    mic_fl: str
    mic_fr: str


def output_node(d: Device) -> str:
    return d.output_node or f"bluez_output.{d.address_underscored}.1"


def input_node(d: Device) -> str:
    return d.input_node or f"bluez_input.{d.address}"


class DeviceRegistry:
    """
    Read-only catalog of devices and the fixed edge table of every wiring mode.
    Built once at startup; watcher threads share it without locking.
    """

    def __init__(
        self,
        devices: Iterable[Device],
        usb: UsbPorts,
        virtual_sink: str = "virtual-sink",
        virtual_mic: str = "virtual-mic",
    ) -> None:
        self._devices: Tuple[Device, ...] = tuple(sorted(devices, key=lambda d: (d.rank, d.name)))
        self.usb = usb
        self.virtual_sink = virtual_sink
        self.virtual_mic = virtual_mic

        names = [d.name for d in self._devices]
        if len(set(names)) != len(names):
            raise ConfigError(f"Duplicate device names: {names}")

        self._modes: Dict[str, FrozenSet[RoutingEdge]] = self._build_modes()

    # --- devices --------------------------------------------------------------

    @property
    def devices(self) -> Tuple[Device, ...]:
        return self._devices

    def bluetooth_devices(self) -> List[Device]:
        return [d for d in self._devices if d.is_bluetooth]

    def get(self, name: str) -> Device:
        for d in self._devices:
            if d.name == name:
                return d
        raise KeyError(name)

    def higher_priority_than(self, device: Device) -> List[Device]:
        return [d for d in self._devices if d.rank < device.rank and d.card]

    def device_for_mode(self, mode: str) -> Optional[Device]:
        for d in self.bluetooth_devices():
            if mode in (self.mode_name(d, PROFILE_A2DP), self.mode_name(d, PROFILE_HFP)):
                return d
        return None

    # --- modes ----------------------------------------------------------------

    @staticmethod
    def mode_name(device: Device, profile: str) -> str:
        suffix = "stereo" if profile == PROFILE_A2DP else "hfp"
        return f"{device.name}-{suffix}"

    def mode_for(self, device: Device, profile: str) -> Optional[str]:
        if not device.supports(profile):
            return None
        name = self.mode_name(device, profile)
        return name if name in self._modes else None

    def mode_names(self) -> List[str]:
        return list(self._modes)

    def edges_for(self, mode: str) -> FrozenSet[RoutingEdge]:
        try:
            return self._modes[mode]
        except KeyError:
            raise UnknownModeError(mode) from None

    def mode_for_edges(self, edges: Iterable[RoutingEdge]) -> Optional[str]:
        live = frozenset(edges)
        for name, table in self._modes.items():
            if table == live:
                return name
        return None

    def physical_ports(self) -> Set[str]:
        sink_prefix = f"{self.virtual_sink}:"
        mic_prefix = f"{self.virtual_mic}:"
        out: Set[str] = set()
        for table in self._modes.values():
            for e in table:
                for p in (e.src, e.dst):
                    if not p.startswith(sink_prefix) and not p.startswith(mic_prefix):
                        out.add(p)
        return out

    def boundary_filter(self) -> BoundaryFilter:
        return BoundaryFilter(self.virtual_sink, self.virtual_mic, frozenset(self.physical_ports()))

    def _build_modes(self) -> Dict[str, FrozenSet[RoutingEdge]]:
        sink_fl = f"{self.virtual_sink}:monitor_FL"
        sink_fr = f"{self.virtual_sink}:monitor_FR"
        mic_fl = f"{self.virtual_mic}:input_FL"
        mic_fr = f"{self.virtual_mic}:input_FR"

        usb_mic = {
            RoutingEdge(self.usb.mic_fl, mic_fl),
            RoutingEdge(self.usb.mic_fr, mic_fr),
        }

        modes: Dict[str, FrozenSet[RoutingEdge]] = {
            USB_MODE: frozenset(
                {
                    RoutingEdge(sink_fl, self.usb.speaker_fl),
                    RoutingEdge(sink_fr, self.usb.speaker_fr),
                }
                | usb_mic
            )
        }

        for d in self.bluetooth_devices():
            out = output_node(d)
            if MODE_STEREO in d.modes:
                modes[self.mode_name(d, PROFILE_A2DP)] = frozenset(
                    {
                        RoutingEdge(sink_fl, f"{out}:playback_FL"),
                        RoutingEdge(sink_fr, f"{out}:playback_FR"),
                    }
                    | usb_mic
                )
            if MODE_VOICE in d.modes:
                bt_mic = f"{input_node(d)}:capture_MONO"
                modes[self.mode_name(d, PROFILE_HFP)] = frozenset(
                    {
                        RoutingEdge(bt_mic, mic_fl),
                        RoutingEdge(bt_mic, mic_fr),
                        RoutingEdge(sink_fl, f"{out}:playback_MONO"),
                        RoutingEdge(sink_fr, f"{out}:playback_MONO"),
                    }
                )
        return modes


def _device_from_section(cfg: configparser.ConfigParser, section: str) -> Device:
    name = section[len(DEVICE_SECTION_PREFIX):].strip()
    if not name or name == USB_MODE:
        raise ConfigError(f"[{section}] needs a device name other than '{USB_MODE}'")

    address = get_required(cfg, section, "address").upper()
    if len(address.split(":")) != 6:
        raise ConfigError(f"[{section}] 'address' must look like AA:BB:CC:DD:EE:FF, got {address!r}")

    device_class = cfg.get(section, "class", fallback=CLASS_SECONDARY).strip()
    if device_class not in _DEVICE_CLASSES:
        raise ConfigError(f"[{section}] 'class' must be one of {', '.join(_DEVICE_CLASSES)}")

    modes = frozenset(get_list(cfg, section, "modes") or [MODE_VOICE])
    unknown = sorted(modes - set(_MODES))
    if unknown:
        raise ConfigError(f"[{section}] unknown modes: {', '.join(unknown)}")

    grace = get_float(cfg, section, "connect_grace", 2.0)
    if not 0.3 <= grace <= 3.0:
        raise ConfigError(f"[{section}] 'connect_grace' must be within 0.3-3.0 seconds")

    underscored = address.replace(":", "_")
    return Device(
        name=name,
        address=address,
        device_class=device_class,
        rank=get_int(cfg, section, "rank", 10),
        modes=modes,
        card=cfg.get(section, "card", fallback="").strip() or f"bluez_card.{underscored}",
        adapter=cfg.get(section, "adapter", fallback="hci0").strip() or "hci0",
        output_node=cfg.get(section, "output_node", fallback="").strip(),
        input_node=cfg.get(section, "input_node", fallback="").strip(),
        connect_grace=grace,
    )


def registry_from_config(cfg: configparser.ConfigParser) -> DeviceRegistry:
    if not cfg.has_section("USB"):
        raise ConfigError("Config has no [USB] section")

    usb = UsbPorts(
        speaker_fl=get_required(cfg, "USB", "speaker_fl"),
        speaker_fr=get_required(cfg, "USB", "speaker_fr"),
        mic_fl=get_required(cfg, "USB", "mic_fl"),
        mic_fr=get_required(cfg, "USB", "mic_fr"),
    )

    devices = [_device_from_section(cfg, s) for s in device_sections(cfg)]
    devices.append(
        Device(
            name=USB_MODE,
            address="",
            device_class=CLASS_USB,
            rank=get_int(cfg, "USB", "rank", 100),
            modes=frozenset({MODE_STEREO}),
        )
    )

    return DeviceRegistry(
        devices,
        usb,
        virtual_sink=cfg.get("Virtual", "sink", fallback="virtual-sink").strip() or "virtual-sink",
        virtual_mic=cfg.get("Virtual", "mic", fallback="virtual-mic").strip() or "virtual-mic",
    )
