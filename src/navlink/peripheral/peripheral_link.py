# peripheral_link.py
# Serial connection to the guidance display (e.g. an HC-05 Bluetooth SPP module).
# Writes happen on a background thread so a slow port never stalls fix processing.

import errno
import logging
import queue
import re
import threading
from typing import Callable, Optional, Pattern, Union

import serial
from serial.tools import list_ports

from navlink.guidance.errors import (
    PeripheralConnectFailed,
    PeripheralError,
    PeripheralNotConnected,
    PeripheralNotFound,
    PeripheralWriteFailed,
    PermissionDenied,
)
from navlink.guidance.models import GuidanceMessage
from navlink.guidance.nav_config import NavConfig

logger = logging.getLogger(__name__)

DeviceMatcher = Union[str, Pattern, Callable[[object], bool]]

_STOP = None


def _port_fields(port) -> list:
    names = ("device", "name", "description", "product", "manufacturer")
    return [str(v) for v in (getattr(port, n, None) for n in names) if v]


def port_matches(matcher: DeviceMatcher, port) -> bool:
    """
    True if a pyserial ListPortInfo matches.

    A string is a case-insensitive substring of device, name, description,
    product or manufacturer; a compiled regex is searched in the same fields;
    anything else is called with the port.
    """
    if isinstance(matcher, re.Pattern):
        return any(matcher.search(f) for f in _port_fields(port))
    if isinstance(matcher, str):
        needle = matcher.lower()
        return any(needle in f.lower() for f in _port_fields(port))
    return bool(matcher(port))


class PeripheralLink:
    """
    Best-effort line sender over a serial port.

    Usage:
        with PeripheralLink(config) as link:
            link.connect("HC-05")
            link.send("D:1.20km | Dir:Turn left\\n")

    Args:
        config:         NavConfig (baud rate, timeouts, queue size).
        serial_factory: Callable opening a port, defaults to serial.Serial.
        port_lister:    Callable listing ports, defaults to list_ports.comports.
    """

    def __init__(
        self,
        config: Optional[NavConfig] = None,
        serial_factory: Callable[..., serial.Serial] = serial.Serial,
        port_lister: Callable[[], list] = list_ports.comports,
    ) -> None:
        self.config = config or NavConfig()
        self._serial_factory = serial_factory
        self._port_lister = port_lister

        self._port: Optional[serial.Serial] = None
        self._device: Optional[str] = None
        self._queue: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=self.config.send_queue_size)
        self._stop = threading.Event()
        self._writer: Optional[threading.Thread] = None
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._port is not None

    @property
    def device(self) -> Optional[str]:
        return self._device

    def connect(self, device_name_matcher: Optional[DeviceMatcher] = None) -> str:
        """
        Find a port matching device_name_matcher and open it.

        Returns:
            The device path that was opened.

        Raises:
            PeripheralNotFound, PeripheralConnectFailed, PermissionDenied
        """
        if self._port is not None:
            return self._device

        matcher = device_name_matcher if device_name_matcher is not None else self.config.peripheral_name
        candidates = [p for p in self._port_lister() if port_matches(matcher, p)]
        if not candidates:
            raise PeripheralNotFound(f"No serial port matches {matcher!r}.")

        device = candidates[0].device
        try:
            port = self._serial_factory(
                device,
                baudrate=self.config.baud_rate,
                timeout=1,
                write_timeout=self.config.write_timeout_s,
            )
        except (serial.SerialException, OSError) as e:
            if isinstance(e, PermissionError) or getattr(e, "errno", None) == errno.EACCES:
                raise PermissionDenied(f"Access to {device} denied: {e}") from e
            raise PeripheralConnectFailed(f"Could not open {device}: {e}") from e

        self._port = port
        self._device = device
        self._stop.clear()
        self._writer = threading.Thread(target=self._write_loop, name="peripheral-writer", daemon=True)
        self._writer.start()
        logger.info(f"Peripheral connected on {device} @ {self.config.baud_rate} baud.")
        return device

    def disconnect(self) -> None:
        """Stop the writer and close the port. Safe to call more than once."""
        self._stop.set()
        if self._writer is not None:
            try:
                self._queue.put_nowait(_STOP)
            except queue.Full:
                pass
            self._writer.join(timeout=self.config.write_timeout_s + 1.0)
            self._writer = None

        port, self._port = self._port, None
        if port is not None:
            try:
                port.close()
            except (serial.SerialException, OSError) as e:
                logger.warning(f"Error closing {self._device}: {e}")
            logger.info(f"Peripheral on {self._device} disconnected.")
        self._device = None

        # Drop whatever was still queued
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

    def __enter__(self) -> "PeripheralLink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, message: str) -> None:
        """
        Queue one line for the peripheral and return immediately.

        Raises:
            PeripheralNotConnected: no port is open.
        """
        if self._port is None:
            raise PeripheralNotConnected("Peripheral is not connected.")
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            logger.warning(f"Peripheral queue full; dropping: {message.strip()!r}")

    def write_line(self, message: str) -> None:
        """
        Write one line synchronously.

        Raises:
            PeripheralNotConnected, PeripheralWriteFailed
        """
        port = self._port
        if port is None:
            raise PeripheralNotConnected("Peripheral is not connected.")
        data = message.encode("ascii", errors="replace")
        with self._write_lock:
            try:
                port.write(data)
                port.flush()
            except (serial.SerialException, OSError) as e:
                raise PeripheralWriteFailed(f"Write to {self._device} failed: {e}") from e

    def on_guidance(self, message: GuidanceMessage) -> None:
        """GuidanceEmitter observer: forward message, never raise."""
        try:
            self.send(message.to_wire())
        except PeripheralError as e:
            logger.warning(f"Guidance not forwarded: {e}")

    def _write_loop(self) -> None:
        while not self._stop.is_set():
            try:
                line = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            if line is _STOP:
                break
            try:
                self.write_line(line)
            except PeripheralError as e:
                logger.warning(f"{type(e).__name__}: {e}")
