"""Argument extraction for received messages."""

from __future__ import annotations

import logging
import re
from typing import Any

from .errors import ErrorKind
from .escaping import EscapeCodec
from .framing import Message
from .values import FixedWidth

logger = logging.getLogger(__name__)

INT16_RANGE = (-0x8000, 0x7FFF)
INT32_RANGE = (-0x80000000, 0x7FFFFFFF)

_DECIMAL = re.compile(rb"[+-]?[0-9]+")


def _parse_decimal(raw: bytes) -> int | None:
    """Plain signed decimal digits only, no padding or underscores."""
    if not _DECIMAL.fullmatch(raw):
        return None
    return int(raw)


class ArgumentCursor:
    """Walks the fields of one message, unescaping each exactly once.

    The identifier is consumed on construction; :meth:`next` then steps
    through the arguments. Typed ``read_*`` helpers call :meth:`next`
    and convert the field, reporting failure through :meth:`is_arg_ok`
    and returning a default value instead of raising.
    """

    def __init__(self, message: Message, codec: EscapeCodec) -> None:
        self._message = message
        self._codec = codec
        self._position = 0
        self._current: bytes | None = None
        self._arg_ok = False
        self.last_error: ErrorKind | None = None
        self._command_id = self._parse_command_id()

    @property
    def message(self) -> Message:
        return self._message

    @property
    def current(self) -> bytes | None:
        """Decoded bytes of the last field returned by :meth:`next`."""
        return self._current

    def _parse_command_id(self) -> int | None:
        if not self.next():
            return None
        command_id = _parse_decimal(self._current)
        if command_id is None:
            logger.debug("Non-numeric command identifier %r", self._current)
        return command_id

    def command_id(self) -> int | None:
        """Identifier of the message, or ``None`` if it is not a decimal number."""
        return self._command_id

    def available(self) -> bool:
        """Whether another field remains to be read."""
        return self._position <= self._message.end

    def is_arg_ok(self) -> bool:
        """Whether the last typed read decoded cleanly."""
        return self._arg_ok

    def next(self) -> bool:
        """Advance to the next field.

        Returns:
            ``True`` if a field was found. When the message is exhausted
            the previous field stays available through :attr:`current`.
        """
        message = self._message
        if self._position > message.end:
            return False

        data = message.data
        start = self._position
        stop = self._codec.find_unescaped(data, self._codec.field_separator, start, message.end)
        field_end = message.end if stop < 0 else stop

        new_end = self._codec.unescape_in_place(data, start, field_end)
        message.end -= field_end - new_end
        self._current = bytes(data[start:new_end])

        if stop < 0:
            self._position = message.end + 1
        else:
            self._position = new_end + 1
        return True

    # ─── TEXT READERS ────────────────────────────────────────────────

    def _fail(self, default: Any, kind: ErrorKind | None = None) -> Any:
        self._arg_ok = False
        if kind is not None:
            self.last_error = kind
        return default

    def _next_text(self) -> str | None:
        if not self.next():
            return None
        return self._current.decode("utf-8", errors="replace")

    def _read_int(self, bounds: tuple[int, int]) -> int:
        if not self.next():
            return self._fail(0)
        value = _parse_decimal(self._current)
        if value is None:
            return self._fail(0)
        if not bounds[0] <= value <= bounds[1]:
            return self._fail(0)
        self._arg_ok = True
        return value

    def read_int16_arg(self) -> int:
        return self._read_int(INT16_RANGE)

    def read_int32_arg(self) -> int:
        return self._read_int(INT32_RANGE)

    def read_bool_arg(self) -> bool:
        """Read ``0``/``1`` (any non-zero integer is true) or ``true``/``false``."""
        text = self._next_text()
        if text is None:
            return self._fail(False)
        lowered = text.lower()
        if lowered in ("true", "false"):
            self._arg_ok = True
            return lowered == "true"
        value = _parse_decimal(self._current)
        if value is None:
            return self._fail(False)
        self._arg_ok = True
        return value != 0

    def read_char_arg(self) -> str:
        """First byte of the field as a one-character latin-1 string."""
        if not self.next() or not self._current:
            return self._fail("")
        self._arg_ok = True
        return self._current[:1].decode("latin-1")

    def read_float_arg(self) -> float:
        text = self._next_text()
        if text is None:
            return self._fail(0.0)
        try:
            value = float(text)
        except ValueError:
            return self._fail(0.0)
        self._arg_ok = True
        return value

    read_double_arg = read_float_arg

    def read_string_arg(self) -> str:
        text = self._next_text()
        if text is None:
            return self._fail("")
        self._arg_ok = True
        return text

    def read_bytes_arg(self) -> bytes:
        if not self.next():
            return self._fail(b"")
        self._arg_ok = True
        return self._current

    def copy_string_arg(self, size: int) -> str:
        """Read a string argument, keeping at most ``size - 1`` characters."""
        text = self.read_string_arg()
        return text[: max(size - 1, 0)]

    def compare_string_arg(self, expected: str) -> bool:
        """Read a string argument and compare it with ``expected``."""
        text = self._next_text()
        if text is None:
            return self._fail(False)
        self._arg_ok = True
        return text == expected

    # ─── BINARY READER ───────────────────────────────────────────────

    def read_bin_arg(self, value_type: FixedWidth) -> Any:
        """Read a binary argument of exactly ``value_type.width`` bytes."""
        if not self.next():
            return self._fail(value_type.default)
        try:
            value = value_type.decode(self._current)
        except ValueError as e:
            logger.debug("Binary argument rejected: %s", e)
            return self._fail(value_type.default, ErrorKind.DECODE_MISMATCH)
        self._arg_ok = True
        return value
