from __future__ import annotations

from typing import List

import pytest

from registry import DeviceRegistry, registry_from_config
from store_config import DEFAULT_CONFIG_TEXT, parse_config_text

XM5_PATH = "/org/bluez/hci0/dev_80_99_E7_43_87_E0"
XM5_CARD = "bluez_card.80_99_E7_43_87_E0"
EARFUN_PATH = "/org/bluez/hci0/dev_A1_51_8D_B9_80_6A"
EARFUN_CARD = "bluez_card.A1_51_8D_B9_80_6A"


def signal_line(path: str) -> str:
    return (
        "signal time=1718000000.123456 sender=:1.7 -> destination=(null destination) "
        f"serial=4211 path={path}; interface=org.freedesktop.DBus.Properties; member=PropertiesChanged"
    )


def connected_block(value: str, path: str = XM5_PATH) -> List[str]:
    return [
        signal_line(path),
        '   string "org.bluez.Device1"',
        "   array [",
        "      dict entry(",
        '         string "Connected"',
        f"         variant             boolean {value}",
        "      )",
        "   ]",
        "   array [",
        "   ]",
    ]


def transport_block(state: str, path: str = XM5_PATH + "/sep1/fd3") -> List[str]:
    return [
        signal_line(path),
        '   string "org.bluez.MediaTransport1"',
        "   array [",
        "      dict entry(",
        '         string "State"',
        f'         variant             string "{state}"',
        "      )",
        "   ]",
        "   array [",
        "   ]",
    ]


@pytest.fixture
def registry() -> DeviceRegistry:
    return registry_from_config(parse_config_text(DEFAULT_CONFIG_TEXT))


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "autoroute.cfg"
    path.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")
    return path
