"""Serial port channel backed by pyserial.

Typical peers are microcontroller boards on a USB-CDC or UART port::

    channel = SerialChannel("/dev/ttyACM0", baudrate=115200)
    channel.open()
    messenger = CmdMessenger(channel)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import serial
from serial.tools import list_ports as serial_list_ports

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200
READ_TIMEOUT = 0  # Non-blocking reads; the messenger polls ``available``


@dataclass
class PortInfo:
    """Description of a serial port as reported by the OS."""

    device: str = ""
    description: str = ""
    hwid: str = ""
    vid: int | None = None
    pid: int | None = None

    def to_dict(self) -> dict:
        return {
            "device": self.device,
            "description": self.description,
            "hwid": self.hwid,
            "vid": f"{self.vid:#06x}" if self.vid is not None else None,
            "pid": f"{self.pid:#06x}" if self.pid is not None else None,
        }


def list_ports() -> list[PortInfo]:
    """Enumerate serial ports present on this machine."""
    return [
        PortInfo(
            device=port.device,
            description=port.description or "",
            hwid=port.hwid or "",
            vid=port.vid,
            pid=port.pid,
        )
        for port in serial_list_ports.comports()
    ]


class SerialChannel:
    """Byte channel over a serial port.

    Usage::

        channel = SerialChannel("COM3")
        channel.open()
        channel.write(b"1,hello;")
        while channel.available():
            byte = channel.read_byte()
        channel.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = READ_TIMEOUT,
    ) -> None:
        self._port = port
        self._baudrate = baudrate
        self._timeout = timeout
        self._serial: serial.Serial | None = None

    @property
    def port(self) -> str:
        return self._port

    @property
    def baudrate(self) -> int:
        return self._baudrate

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        """Open the port.

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        if self.connected:
            return
        try:
            self._serial = serial.Serial(self._port, self._baudrate, timeout=self._timeout)
        except serial.SerialException as e:
            raise ConnectionError(
                f"Could not open serial port {self._port} at {self._baudrate} baud. "
                f"Ensure the device is connected and you have permissions. "
                f"Last error: {e}"
            ) from e
        logger.info("Opened %s at %d baud", self._port, self._baudrate)

    def close(self) -> None:
        """Close the port."""
        if self._serial is None:
            return
        try:
            self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing port: %s", e)
        finally:
            self._serial = None
            logger.info("Disconnected from %s", self._port)

    def _require_open(self) -> serial.Serial:
        if not self.connected:
            raise ConnectionError(f"Serial port {self._port} is not open")
        return self._serial

    def available(self) -> bool:
        return self._require_open().in_waiting > 0

    def read_byte(self) -> int | None:
        data = self._require_open().read(1)
        if not data:
            return None
        return data[0]

    def write(self, data: bytes) -> int:
        written = self._require_open().write(data)
        return written if written is not None else len(data)

    def write_byte(self, byte: int) -> int:
        return self.write(bytes([byte]))

    def __enter__(self) -> SerialChannel:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
