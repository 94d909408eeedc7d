# dbus_cli.py
from __future__ import annotations

import logging
import subprocess
import threading
from typing import Iterator, List, Optional, Sequence


_LOGGER = logging.getLogger(__name__)


def properties_changed_match(path_namespace: str) -> str:
    return (
        "type='signal',"
        "interface='org.freedesktop.DBus.Properties',"
        "member='PropertiesChanged',"
        f"path_namespace='{path_namespace}'"
    )


def dbus_monitor_command(path_namespace: str) -> List[str]:
    return ["dbus-monitor", "--system", properties_changed_match(path_namespace)]


class DbusMonitor:
    """
    Line source over one dbus-monitor child process.

    lines() blocks on the child's stdout and ends when the child exits.
    stop() may be called from another thread; it terminates the child, which
    in turn ends lines() in the reading thread.
    """

    def __init__(self, path_namespace: str, command: Optional[Sequence[str]] = None, terminate_timeout: float = 3.0) -> None:
        self._command = list(command) if command is not None else dbus_monitor_command(path_namespace)
        self._terminate_timeout = terminate_timeout
        self._process: Optional[subprocess.Popen[str]] = None
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def command(self) -> List[str]:
        return list(self._command)

    def _start(self) -> Optional[subprocess.Popen[str]]:
        with self._lock:
            if self._stopped:
                return None
            if self._process is not None:
                raise RuntimeError("monitor already started")
            try:
                self._process = subprocess.Popen(
                    self._command,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.DEVNULL,
                    text=True,
                    bufsize=1,
                )
            except OSError as e:
                raise RuntimeError(f"{self._command[0]} could not be started: {e}") from e
            _LOGGER.debug("Started %s pid=%s", self._command[0], self._process.pid)
            return self._process

    def lines(self) -> Iterator[str]:
        process = self._start()
        if process is None or process.stdout is None:
            return
        try:
            for line in process.stdout:
                yield line.rstrip("\n")
        finally:
            process.stdout.close()
            code = process.wait()
            _LOGGER.debug("%s exited with %s", self._command[0], code)

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            process = self._process
            if process is None or process.poll() is not None:
                return
            process.terminate()
        try:
            process.wait(timeout=self._terminate_timeout)
        except subprocess.TimeoutExpired:
            _LOGGER.warning("%s did not terminate in time; force killing", self._command[0])
            process.kill()
            process.wait(timeout=self._terminate_timeout)
