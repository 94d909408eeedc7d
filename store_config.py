# store_config.py
from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_CONFIG_TEXT = """\
[Virtual]
sink = virtual-sink
mic = virtual-mic

[Device xm5]
address = 80:99:E7:43:87:E0
class = primary
rank = 1
modes = stereo, voice-mono
connect_grace = 2.0

[Device earfun]
address = A1:51:8D:B9:80:6A
class = secondary
rank = 2
modes = voice-mono
connect_grace = 1.0

[USB]
rank = 100
speaker_fl = alsa_output.usb-Generic_USB_Audio-00.HiFi__Speaker__sink:playback_FL
speaker_fr = alsa_output.usb-Generic_USB_Audio-00.HiFi__Speaker__sink:playback_FR
mic_fl = alsa_input.usb-046d_HD_Pro_Webcam_C920_B570B5EF-02.analog-stereo:capture_FL
mic_fr = alsa_input.usb-046d_HD_Pro_Webcam_C920_B570B5EF-02.analog-stereo:capture_FR

[Log]
level = INFO
"""

DEVICE_SECTION_PREFIX = "Device "


class ConfigError(RuntimeError):
    pass


def _linux_xdg_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def user_config_dir(app_name: str) -> Path:
    return _linux_xdg_config_dir() / app_name


def parse_config_text(text: str) -> configparser.ConfigParser:
    cfg = configparser.ConfigParser()
    try:
        cfg.read_string(text)
    except configparser.Error as e:
        raise ConfigError(f"Config is not valid INI: {e}") from e
    return cfg


def device_sections(cfg: configparser.ConfigParser) -> list[str]:
    return [s for s in cfg.sections() if s.startswith(DEVICE_SECTION_PREFIX)]


def get_required(cfg: configparser.ConfigParser, section: str, key: str) -> str:
    v = cfg.get(section, key, fallback="").strip()
    if not v:
        raise ConfigError(f"[{section}] is missing '{key}'")
    return v


def get_int(cfg: configparser.ConfigParser, section: str, key: str, default: int) -> int:
    raw = cfg.get(section, key, fallback="").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"[{section}] '{key}' must be an integer, got {raw!r}") from e


def get_float(cfg: configparser.ConfigParser, section: str, key: str, default: float) -> float:
    raw = cfg.get(section, key, fallback="").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"[{section}] '{key}' must be a number, got {raw!r}") from e


def get_list(cfg: configparser.ConfigParser, section: str, key: str) -> list[str]:
    raw = cfg.get(section, key, fallback="")
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass(frozen=True)
class ConfigStore:
    app_name: str = "bt-autoroute"
    filename: str = "autoroute.cfg"
    explicit_path: str = ""

    @property
    def dir_path(self) -> Path:
        if self.explicit_path:
            return Path(self.explicit_path).expanduser().parent
        return user_config_dir(self.app_name)

    @property
    def file_path(self) -> Path:
        if self.explicit_path:
            return Path(self.explicit_path).expanduser()
        return self.dir_path / self.filename

    def ensure_exists(self) -> None:
        self.dir_path.mkdir(parents=True, exist_ok=True)
        if not self.file_path.exists():
            self.file_path.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")

    def load(self) -> configparser.ConfigParser:
        self.ensure_exists()
        try:
            text = self.file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read {self.file_path}: {e}") from e
        cfg = parse_config_text(text)

        if not cfg.has_section("Virtual"):
            cfg.add_section("Virtual")
        cfg.set("Virtual", "sink", cfg.get("Virtual", "sink", fallback="virtual-sink"))
        cfg.set("Virtual", "mic", cfg.get("Virtual", "mic", fallback="virtual-mic"))

        if not cfg.has_section("Log"):
            cfg.add_section("Log")
        cfg.set("Log", "level", cfg.get("Log", "level", fallback="INFO"))

        return cfg
