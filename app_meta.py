# app_meta.py
from __future__ import annotations

import logging
from importlib import metadata


APP_NAME = "bt-autoroute"

LOG_FORMAT = "[%(asctime)s] [%(threadName)s] %(levelname)s %(message)s"
LOG_DATEFMT = "%H:%M:%S"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def detect_version() -> str:
    try:
        return metadata.version(APP_NAME)
    except metadata.PackageNotFoundError:
        return "0+unknown"


def configure_logging(level: str) -> None:
    name = (level or "INFO").upper()
    if name == "WARN":
        name = "WARNING"
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
