"""Incremental message framing over a byte stream.

Wire layout (defaults shown)::

    +------+-----+-------+-----+-------+-----+-------------+-----+
    |  id  |  ,  | arg 1 |  ,  | arg N |  ,  | check value |  ;  |
    | text |     |       |     |       |     | 2 B, LE     |     |
    +------+-----+-------+-----+-------+-----+-------------+-----+

- id: command identifier as decimal text
- arg: text or binary, escaped (see :mod:`.escaping`)
- check value: CRC-16 over the logical bytes of ``id`` and every
  ``,arg`` pair, present only when a polynomial is configured
- ``;`` terminates the message

:class:`CommandParser` consumes one byte at a time and holds at most one
complete message until the consumer takes it with :meth:`CommandParser.begin`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum

from ..utils.crc import CHECK_VALUE_SIZE, CrcEngine
from .escaping import EscapeCodec

logger = logging.getLogger(__name__)

_LINE_BREAKS = (ord("\r"), ord("\n"))


class MessageState(IntEnum):
    """Parser progress through the current message."""

    ACCUMULATING = 0
    MESSAGE_COMPLETE = 1
    ARGUMENTS_IN_PROGRESS = 2


@dataclass
class Message:
    """One received command, still in wire (escaped) form.

    ``end`` marks where the argument fields stop; it is moved in front
    of the check value field once the CRC has been verified.
    """

    data: bytearray
    boundaries: list[int] = field(default_factory=list)
    truncated: bool = False
    end: int = -1
    check_value: int | None = None

    def __post_init__(self) -> None:
        if self.end < 0:
            self.end = len(self.data)

    @property
    def field_count(self) -> int:
        """Number of fields, identifier included, as framed on the wire."""
        return len(self.boundaries) + 1

    def __repr__(self) -> str:
        return (
            f"Message(data={bytes(self.data[: self.end])!r}, "
            f"fields={self.field_count}, truncated={self.truncated})"
        )


class CommandParser:
    """Byte-at-a-time state machine that splits a stream into messages.

    Usage::

        parser = CommandParser(EscapeCodec(), capacity=64)
        for byte in incoming:
            if parser.feed(byte) is MessageState.MESSAGE_COMPLETE:
                message = parser.begin()

    Only one complete message is held. Bytes fed before it is taken are
    dropped (counted in ``dropped_bytes``) and the parser skips ahead to
    the next command separator, so the colliding message is discarded
    whole.
    """

    def __init__(self, codec: EscapeCodec, capacity: int = 64) -> None:
        if capacity < 2:
            raise ValueError(f"Command buffer capacity must be at least 2, got {capacity}")
        self._codec = codec
        self._capacity = capacity
        self._buffer = bytearray()
        self._boundaries: list[int] = []
        self._state = MessageState.ACCUMULATING
        self._escape_pending = False
        self._resyncing = False
        self._complete: Message | None = None
        self.overflows = 0
        self.dropped_bytes = 0

    @property
    def state(self) -> MessageState:
        return self._state

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def buffered(self) -> int:
        """Bytes accumulated for the message in progress."""
        return len(self._buffer)

    @property
    def resyncing(self) -> bool:
        return self._resyncing

    def reset(self) -> None:
        """Drop any partial or pending message and start accumulating afresh."""
        self._buffer = bytearray()
        self._boundaries = []
        self._state = MessageState.ACCUMULATING
        self._escape_pending = False
        self._resyncing = False
        self._complete = None

    def _is_literal(self, byte: int) -> bool:
        if self._escape_pending:
            self._escape_pending = False
            return True
        if byte == self._codec.escape_character:
            self._escape_pending = True
        return False

    def _finish(self, truncated: bool = False) -> None:
        self._complete = Message(
            data=self._buffer,
            boundaries=self._boundaries,
            truncated=truncated,
        )
        self._buffer = bytearray()
        self._boundaries = []
        self._state = MessageState.MESSAGE_COMPLETE

    def feed(self, byte: int) -> MessageState:
        """Consume one byte and return the resulting state."""
        literal = self._is_literal(byte)
        terminator = not literal and byte == self._codec.command_separator

        if self._state is MessageState.MESSAGE_COMPLETE:
            if not literal and byte in _LINE_BREAKS:
                return self._state
            self.dropped_bytes += 1
            self._resyncing = not terminator
            logger.debug("Dropped byte 0x%02X: previous message not taken yet", byte)
            return self._state

        if self._resyncing:
            if terminator:
                self._resyncing = False
            return self._state

        if terminator:
            if self._buffer:
                self._finish()
            return self._state

        if not self._buffer and not literal and byte in _LINE_BREAKS:
            return self._state

        if len(self._buffer) >= self._capacity - 1:
            self.overflows += 1
            logger.warning(
                "Command buffer full (%d bytes), truncating message and resynchronising",
                len(self._buffer),
            )
            self._finish(truncated=True)
            self._resyncing = True
            return self._state

        if not literal and byte == self._codec.field_separator:
            self._boundaries.append(len(self._buffer))
        self._buffer.append(byte)
        return self._state

    def feed_bytes(self, data: bytes) -> list[Message]:
        """Feed a chunk, taking every message completed along the way."""
        messages = []
        for byte in data:
            if self.feed(byte) is MessageState.MESSAGE_COMPLETE:
                messages.append(self.begin())
        return messages

    def begin(self) -> Message | None:
        """Hand over the complete message and resume accumulating.

        Returns ``None`` if no message is complete.
        """
        if self._state is not MessageState.MESSAGE_COMPLETE:
            return None
        message = self._complete
        self._complete = None
        self._state = MessageState.ACCUMULATING
        return message


def verify_check_value(message: Message, codec: EscapeCodec, engine: CrcEngine) -> bool:
    """Check and strip the trailing CRC field of ``message``.

    The CRC is recomputed over the unescaped bytes in front of the last
    unescaped field separator. On success ``message.end`` is moved to
    that separator so the check field is not seen as an argument.

    Returns:
        ``True`` if the check field is present and matches.
    """
    if not engine.enabled:
        return True

    split = -1
    position = codec.find_unescaped(message.data, codec.field_separator)
    while position >= 0:
        split = position
        position = codec.find_unescaped(message.data, codec.field_separator, position + 1)
    if split < 0:
        return False

    check_bytes = codec.unescape(bytes(message.data[split + 1 :]))
    if len(check_bytes) != CHECK_VALUE_SIZE:
        return False
    received = int.from_bytes(check_bytes, "little")

    engine.reset()
    computed = engine.update(codec.unescape(bytes(message.data[:split])))
    if computed != received:
        return False

    message.end = split
    message.check_value = received
    if message.boundaries and message.boundaries[-1] == split:
        message.boundaries.pop()
    return True
