# models.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Union


PROFILE_OFF = "off"
PROFILE_A2DP = "a2dp-sink"
PROFILE_HFP = "headset-head-unit"

MODE_STEREO = "stereo"
MODE_VOICE = "voice-mono"

CLASS_PRIMARY = "primary"
CLASS_SECONDARY = "secondary"
CLASS_USB = "usb-fallback"

TRANSPORT_UNKNOWN = "unknown"
TRANSPORT_ACTIVE = "active"
TRANSPORT_IDLE = "idle"


def profile_family(profile: Optional[str]) -> Optional[str]:
    """
    Codec-suffixed names (a2dp-sink-aac, headset-head-unit-msbc) collapse onto
    their base profile. Anything else is returned unchanged.
    """
    if not profile:
        return None
    p = profile.strip()
    for base in (PROFILE_A2DP, PROFILE_HFP):
        if p == base or p.startswith(base + "-"):
            return base
    return p


def is_active_profile(profile: Optional[str]) -> bool:
    return bool(profile) and profile != PROFILE_OFF


@dataclass(frozen=True)
class AudioNode:
    id: int
    name: str
    description: str
    media_class: str
    props: Dict[str, str]


@dataclass(frozen=True)
class Device:
    name: str
    address: str           # "80:99:E7:43:87:E0", "" for the usb fallback
    device_class: str      # "primary" | "secondary" | "usb-fallback"
    rank: int              # lower wins
    modes: FrozenSet[str]  # subset of {"stereo", "voice-mono"}
    card: str = ""         # "bluez_card.80_99_E7_43_87_E0"
    adapter: str = "hci0"
    output_node: str = ""
    input_node: str = ""
    connect_grace: float = 2.0

    @property
    def address_underscored(self) -> str:
        return self.address.replace(":", "_")

    @property
    def is_bluetooth(self) -> bool:
        return bool(self.address)

    @property
    def object_path(self) -> str:
        return f"/org/bluez/{self.adapter}/dev_{self.address_underscored}"

    @property
    def transport_prefix(self) -> str:
        return f"{self.object_path}/sep"

    def supports(self, profile: str) -> bool:
        if profile == PROFILE_A2DP:
            return MODE_STEREO in self.modes
        if profile == PROFILE_HFP:
            return MODE_VOICE in self.modes
        return False

    def default_profile(self) -> str:
        # mic availability beats fidelity on first contact
        if MODE_VOICE in self.modes:
            return PROFILE_HFP
        return PROFILE_A2DP


@dataclass(frozen=True, order=True)
class RoutingEdge:
    src: str
    dst: str

    def __post_init__(self) -> None:
        if not self.src or not self.dst:
            raise ValueError(f"Routing edge needs two ports: {self.src!r} -> {self.dst!r}")

    def __str__(self) -> str:
        return f"{self.src} -> {self.dst}"


# --- events -------------------------------------------------------------------

@dataclass(frozen=True)
class DeviceConnected:
    path: str = ""


@dataclass(frozen=True)
class DeviceDisconnected:
    path: str = ""


@dataclass(frozen=True)
class TransportStateChanged:
    state: str       # "active" | "idle"
    path: str = ""


@dataclass(frozen=True)
class ProfileObserved:
    profile: Optional[str]


Event = Union[DeviceConnected, DeviceDisconnected, TransportStateChanged, ProfileObserved]


# --- actions ------------------------------------------------------------------

@dataclass(frozen=True)
class EnsureProfileAndWire:
    device: Device
    profile: str
    mode: str


@dataclass(frozen=True)
class WireFallback:
    reason: str = ""


@dataclass(frozen=True)
class Noop:
    reason: str = ""


Action = Union[EnsureProfileAndWire, WireFallback, Noop]


@dataclass
class WatcherState:
    last_transport_state: str = TRANSPORT_UNKNOWN
    last_applied_profile: Optional[str] = None
    last_resolved_profile: Optional[str] = None
