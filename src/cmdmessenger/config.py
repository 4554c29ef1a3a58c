"""Messenger configuration: separators, CRC choice, buffer sizes, timeouts."""

from __future__ import annotations

from dataclasses import dataclass

from .utils.crc import CrcPolynomial

MAX_CALLBACKS = 50  # Highest command ID + 1 that can carry a handler
MESSENGER_BUFFER_SIZE = 64  # Command buffer capacity in bytes
SEND_BUFFER_SIZE = 512  # Staging buffer for buffered sends
DEFAULT_TIMEOUT_MS = 5000  # Wait for an acknowledgment
DEFAULT_ACK_ID = 1
POLL_INTERVAL = 0.001  # Seconds between channel polls while waiting

FIELD_SEPARATOR = ","
COMMAND_SEPARATOR = ";"
ESCAPE_CHARACTER = "/"


def _separator_byte(name: str, value: str) -> int:
    if len(value) != 1:
        raise ValueError(f"{name} must be a single character, got {value!r}")
    code = ord(value)
    if code > 0xFF:
        raise ValueError(f"{name} must fit in one byte, got {value!r}")
    return code


@dataclass(frozen=True)
class MessengerConfig:
    """Construction-time settings for a :class:`~cmdmessenger.messenger.CmdMessenger`.

    Both ends of a link must agree on the separators, the escape
    character, and the CRC polynomial.
    """

    field_separator: str = FIELD_SEPARATOR
    command_separator: str = COMMAND_SEPARATOR
    escape_character: str = ESCAPE_CHARACTER
    crc: CrcPolynomial = CrcPolynomial.NONE
    buffer_size: int = MESSENGER_BUFFER_SIZE
    send_buffer_size: int = SEND_BUFFER_SIZE
    max_callbacks: int = MAX_CALLBACKS
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    poll_interval: float = POLL_INTERVAL
    print_newlines: bool = False

    def __post_init__(self) -> None:
        specials = {
            "field_separator": _separator_byte("field_separator", self.field_separator),
            "command_separator": _separator_byte(
                "command_separator", self.command_separator
            ),
            "escape_character": _separator_byte("escape_character", self.escape_character),
        }
        if len(set(specials.values())) != len(specials):
            raise ValueError(
                f"Separators and escape character must differ, got {specials}"
            )
        if self.buffer_size < 2:
            raise ValueError(f"buffer_size must be at least 2, got {self.buffer_size}")
        if self.send_buffer_size < 1:
            raise ValueError(
                f"send_buffer_size must be positive, got {self.send_buffer_size}"
            )
        if self.max_callbacks < 1:
            raise ValueError(f"max_callbacks must be positive, got {self.max_callbacks}")
        if self.default_timeout_ms < 0:
            raise ValueError(
                f"default_timeout_ms must not be negative, got {self.default_timeout_ms}"
            )
        # Accept plain ints for the polynomial
        object.__setattr__(self, "crc", CrcPolynomial(self.crc))

    @property
    def field_separator_byte(self) -> int:
        return ord(self.field_separator)

    @property
    def command_separator_byte(self) -> int:
        return ord(self.command_separator)

    @property
    def escape_byte(self) -> int:
        return ord(self.escape_character)

    def to_dict(self) -> dict:
        return {
            "field_separator": self.field_separator,
            "command_separator": self.command_separator,
            "escape_character": self.escape_character,
            "crc": self.crc.name,
            "buffer_size": self.buffer_size,
            "send_buffer_size": self.send_buffer_size,
            "max_callbacks": self.max_callbacks,
            "default_timeout_ms": self.default_timeout_ms,
            "print_newlines": self.print_newlines,
        }
