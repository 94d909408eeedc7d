# bt_events.py
"""
Turns a dbus-monitor PropertiesChanged stream into typed device events.

Two independent grammars share one stream:

  * connection: an org.bluez.Device1 block, a `string "Connected"` key and a
    boolean value line
  * transport: an org.bluez.MediaTransport1 block under the device's
    .../sepN transport path, a `string "State"` key and an active/idle value

Each grammar has its own cursor. A new notification block (a column-0 line
such as `signal ... path=...`) resets both cursors.
"""
from __future__ import annotations

import enum
import logging
import re
from typing import Iterable, Iterator, Optional, Tuple

from models import (
    TRANSPORT_ACTIVE,
    TRANSPORT_IDLE,
    DeviceConnected,
    DeviceDisconnected,
    Event,
    TransportStateChanged,
)


_LOGGER = logging.getLogger(__name__)

DEVICE_IFACE = "org.bluez.Device1"
TRANSPORT_IFACE = "org.bluez.MediaTransport1"

BLOCK_PREFIXES = ("signal", "method call", "method return", "error")

_PATH_RE = re.compile(r"\bpath=([^\s;]+)")
_STRING_VALUE_RE = re.compile(r'\bvariant\s+string\s+"([^"]*)"')
_VALUE_RE = re.compile(r"\bvariant\s+\S")


class LineKind(enum.Enum):
    BLOCK_START = "block-start"
    DEVICE_IFACE = "device-iface"
    CONNECTED_KEY = "connected-key"
    BOOL_TRUE = "bool-true"
    BOOL_FALSE = "bool-false"
    TRANSPORT_IFACE = "transport-iface"
    STATE_KEY = "state-key"
    STRING_VALUE = "string-value"
    OTHER_VALUE = "other-value"
    OTHER = "other"


class ConnState(enum.Enum):
    IDLE = "idle"
    IN_DEVICE_BLOCK = "in-device-block"
    EXPECT_CONNECTED = "expect-connected"


class MediaState(enum.Enum):
    IDLE = "idle"
    IN_MEDIA_BLOCK = "in-media-block"
    EXPECT_STATE = "expect-state"


def classify_line(line: str) -> Tuple[LineKind, str]:
    """
    Classify one raw line. The second item carries the payload: the object
    path for BLOCK_START, the quoted value for STRING_VALUE, "" otherwise.
    """
    if not line or not line.strip():
        return LineKind.OTHER, ""

    if not line[0].isspace() and line.startswith(BLOCK_PREFIXES):
        m = _PATH_RE.search(line)
        return LineKind.BLOCK_START, (m.group(1) if m else "")

    s = line.strip()

    if DEVICE_IFACE in s:
        return LineKind.DEVICE_IFACE, ""
    if TRANSPORT_IFACE in s:
        return LineKind.TRANSPORT_IFACE, ""
    if 'string "Connected"' in s:
        return LineKind.CONNECTED_KEY, ""
    if 'string "State"' in s:
        return LineKind.STATE_KEY, ""
    if "boolean true" in s:
        return LineKind.BOOL_TRUE, ""
    if "boolean false" in s:
        return LineKind.BOOL_FALSE, ""

    m = _STRING_VALUE_RE.search(s)
    if m:
        return LineKind.STRING_VALUE, m.group(1)
    if _VALUE_RE.search(s):
        return LineKind.OTHER_VALUE, ""

    return LineKind.OTHER, ""


class PropertiesChangedParser:
    def __init__(self, transport_prefix: str = "") -> None:
        self._transport_prefix = transport_prefix
        self.current_path = ""
        self.conn = ConnState.IDLE
        self.media = MediaState.IDLE

    def reset(self, path: str = "") -> None:
        self.current_path = path
        self.conn = ConnState.IDLE
        self.media = MediaState.IDLE

    def _in_transport_path(self) -> bool:
        if not self._transport_prefix:
            return False
        return self.current_path.startswith(self._transport_prefix)

    def feed(self, line: str) -> Optional[Event]:
        kind, payload = classify_line(line.rstrip("\r\n"))

        if kind is LineKind.BLOCK_START:
            self.reset(payload)
            return None

        event = self._step_connection(kind)
        if event is not None:
            return event

        if self._in_transport_path():
            return self._step_transport(kind, payload)
        return None

    def _step_connection(self, kind: LineKind) -> Optional[Event]:
        if kind is LineKind.DEVICE_IFACE:
            self.conn = ConnState.IN_DEVICE_BLOCK
            return None

        if self.conn is ConnState.IN_DEVICE_BLOCK and kind is LineKind.CONNECTED_KEY:
            self.conn = ConnState.EXPECT_CONNECTED
            return None

        if self.conn is ConnState.EXPECT_CONNECTED:
            if kind is LineKind.BOOL_TRUE:
                self.conn = ConnState.IDLE
                return DeviceConnected(path=self.current_path)
            if kind is LineKind.BOOL_FALSE:
                self.conn = ConnState.IDLE
                return DeviceDisconnected(path=self.current_path)
            # string values may belong to an interleaved transport block
            if kind is LineKind.OTHER_VALUE:
                self.conn = ConnState.IN_DEVICE_BLOCK

        return None

    def _step_transport(self, kind: LineKind, payload: str) -> Optional[Event]:
        if kind is LineKind.TRANSPORT_IFACE:
            self.media = MediaState.IN_MEDIA_BLOCK
            return None

        if self.media is MediaState.IN_MEDIA_BLOCK and kind is LineKind.STATE_KEY:
            self.media = MediaState.EXPECT_STATE
            return None

        if self.media is MediaState.EXPECT_STATE and kind is LineKind.STRING_VALUE:
            self.media = MediaState.IDLE
            if payload in (TRANSPORT_ACTIVE, TRANSPORT_IDLE):
                return TransportStateChanged(state=payload, path=self.current_path)
            _LOGGER.debug("Transport state %r ignored (path=%s)", payload, self.current_path)

        return None


def iter_events(lines: Iterable[str], parser: PropertiesChangedParser) -> Iterator[Event]:
    for line in lines:
        event = parser.feed(line)
        if event is not None:
            yield event
