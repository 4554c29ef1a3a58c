"""Outgoing command composition, direct or staged in a send buffer."""

from __future__ import annotations

import logging
from typing import Any

from ..config import SEND_BUFFER_SIZE
from ..transport.base import Channel
from ..utils.crc import CrcEngine, check_value_bytes
from .escaping import EscapeCodec
from .values import FixedWidth

logger = logging.getLogger(__name__)

NEWLINE = b"\r\n"


class SendBuffer:
    """Fixed-capacity staging area for buffered sends.

    Bytes are appended at the write cursor and consumed from the read
    cursor. Appending past capacity fails without rolling back what was
    already staged.
    """

    def __init__(self, capacity: int = SEND_BUFFER_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"Send buffer capacity must be positive, got {capacity}")
        self._data = bytearray(capacity)
        self._read = 0
        self._write = 0

    @property
    def capacity(self) -> int:
        return len(self._data)

    @property
    def remaining(self) -> int:
        return len(self._data) - self._write

    def __len__(self) -> int:
        return self._write - self._read

    def append(self, byte: int) -> bool:
        if self._write >= len(self._data):
            return False
        self._data[self._write] = byte
        self._write += 1
        return True

    def extend(self, data: bytes) -> bool:
        """Append bytes one at a time; ``False`` once the buffer is full."""
        for byte in data:
            if not self.append(byte):
                return False
        return True

    def read_byte(self) -> int | None:
        if self._read >= self._write:
            return None
        byte = self._data[self._read]
        self._read += 1
        return byte

    def drain(self) -> bytes:
        """Take every unread byte and reset both cursors."""
        data = bytes(self._data[self._read : self._write])
        self.reset()
        return data

    def reset(self) -> None:
        self._read = 0
        self._write = 0


def format_text(value: Any, precision: int | None = None) -> bytes:
    """Text form of an argument before escaping."""
    if isinstance(value, bool):
        return b"1" if value else b"0"
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, float):
        if precision is None:
            return repr(value).encode("ascii")
        return f"{value:.{precision}f}".encode("ascii")
    return str(value).encode("utf-8")


class SendComposer:
    """Builds one command at a time: start, arguments, end.

    Every byte written for the identifier and arguments (field separators
    included, in unescaped form) feeds the CRC. When the CRC is enabled,
    :meth:`end` appends the check value as a last field.

    In buffered mode the bytes go to the :class:`SendBuffer` and reach the
    channel only on :meth:`flush`.
    """

    def __init__(
        self,
        channel: Channel,
        codec: EscapeCodec,
        crc: CrcEngine,
        send_buffer: SendBuffer | None = None,
        print_newlines: bool = False,
    ) -> None:
        self._channel = channel
        self._codec = codec
        self._crc = crc
        self._send_buffer = send_buffer if send_buffer is not None else SendBuffer()
        self.print_newlines = print_newlines
        self._in_progress = False
        self._buffered = False
        self._failed = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def buffered(self) -> bool:
        """Whether the command in progress is staged in the send buffer."""
        return self._buffered

    @property
    def failed(self) -> bool:
        """Whether the command being composed overflowed the send buffer."""
        return self._failed

    @property
    def send_buffer(self) -> SendBuffer:
        return self._send_buffer

    def _emit(self, data: bytes) -> bool:
        if not self._buffered:
            self._channel.write(data)
            return True
        if self._send_buffer.extend(data):
            return True
        if not self._failed:
            logger.warning(
                "Send buffer exhausted (%d bytes), command must be discarded",
                self._send_buffer.capacity,
            )
        self._failed = True
        return False

    def _emit_field(self, raw: bytes) -> bool:
        if not self._in_progress:
            return False
        separator = bytes([self._codec.field_separator])
        self._crc.update(separator)
        self._crc.update(raw)
        return self._emit(separator + self._codec.escape(raw))

    def start(self, command_id: int, buffered: bool = False) -> bool:
        """Begin a command. Refused while another command is in progress."""
        if self._in_progress:
            return False
        self._in_progress = True
        self._buffered = buffered
        self._failed = False
        self._crc.reset()
        raw = str(int(command_id)).encode("ascii")
        self._crc.update(raw)
        return self._emit(self._codec.escape(raw))

    def arg(self, value: Any, precision: int | None = None) -> bool:
        """Append an argument in text form."""
        return self._emit_field(format_text(value, precision))

    def esc_arg(self, text: str) -> bool:
        return self._emit_field(text.encode("utf-8"))

    def sci_arg(self, value: float, digits: int = 6) -> bool:
        """Append a float in scientific notation with ``digits`` decimals."""
        return self._emit_field(f"{value:.{digits}e}".encode("ascii"))

    def fmt_arg(self, fmt: str, *args: Any) -> bool:
        """Append a ``%``-formatted text argument."""
        return self._emit_field((fmt % args).encode("utf-8"))

    def bin_arg(self, value: Any, value_type: FixedWidth) -> bool:
        """Append an argument as the raw bytes of ``value_type``."""
        return self._emit_field(value_type.encode(value))

    def end(self) -> bool:
        """Finish the command: check field (if enabled), separator, newline.

        Returns:
            ``False`` if no command was started or the send buffer
            overflowed at any point during this command.
        """
        if not self._in_progress:
            return False
        if self._crc.enabled:
            check = check_value_bytes(self._crc.value)
            self._emit(bytes([self._codec.field_separator]) + self._codec.escape(check))
        terminator = bytes([self._codec.command_separator])
        if self.print_newlines:
            terminator += NEWLINE
        self._emit(terminator)
        self._in_progress = False
        return not self._failed

    def flush(self) -> int:
        """Write every staged byte to the channel in one call."""
        data = self._send_buffer.drain()
        if data:
            self._channel.write(data)
        return len(data)

    def discard(self) -> None:
        """Throw away staged bytes, e.g. after an exhausted buffer."""
        self._send_buffer.reset()
        self._failed = False
