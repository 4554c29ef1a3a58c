"""Command messenger: receive, dispatch, send, and wait for acknowledgments.

One :class:`CmdMessenger` owns one channel together with its parser,
send buffer and CRC accumulators. It is not thread-safe; use one
instance per channel from a single thread.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from .config import DEFAULT_ACK_ID, MessengerConfig
from .protocol.commands import CallbackTable, Handler
from .protocol.composer import SendBuffer, SendComposer
from .protocol.errors import ErrorKind
from .protocol.escaping import EscapeCodec
from .protocol.framing import CommandParser, Message, MessageState, verify_check_value
from .protocol.parser import ArgumentCursor
from .protocol.values import FixedWidth
from .transport.base import Channel
from .utils.crc import CrcEngine

logger = logging.getLogger(__name__)


class CmdMessenger:
    """Command based messaging over a byte channel.

    Usage::

        messenger = CmdMessenger(channel)

        def on_set_led():
            state = messenger.read_bool_arg()
            messenger.send_cmd(ACKNOWLEDGE, state)

        messenger.attach(SET_LED, on_set_led)
        while True:
            messenger.feed_incoming()

    Args:
        channel: Byte channel to the peer.
        config: Separators, CRC polynomial, buffer sizes and timeouts.
        clock: Monotonic time source in seconds, used by the
            acknowledgment wait.
        sleep: Called between channel polls while waiting.
    """

    def __init__(
        self,
        channel: Channel,
        config: MessengerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._channel = channel
        self._config = config or MessengerConfig()
        self._clock = clock
        self._sleep = sleep

        self._codec = EscapeCodec.from_config(self._config)
        self._parser = CommandParser(self._codec, self._config.buffer_size)
        self._receive_crc = CrcEngine(self._config.crc)
        self._composer = SendComposer(
            channel,
            self._codec,
            CrcEngine(self._config.crc),
            SendBuffer(self._config.send_buffer_size),
            self._config.print_newlines,
        )
        self._callbacks = CallbackTable(self._config.max_callbacks)
        self._cursor: ArgumentCursor | None = None
        self._pause_processing = False
        self._dispatching = False

        self.last_error: ErrorKind | None = None
        self.messages_received = 0
        self.integrity_failures = 0
        self.dropped_during_wait = 0

    # ─── STATE ───────────────────────────────────────────────────────

    @property
    def config(self) -> MessengerConfig:
        return self._config

    @property
    def channel(self) -> Channel:
        return self._channel

    @property
    def codec(self) -> EscapeCodec:
        return self._codec

    @property
    def parser(self) -> CommandParser:
        return self._parser

    @property
    def composer(self) -> SendComposer:
        return self._composer

    @property
    def message_state(self) -> MessageState:
        if self._dispatching:
            return MessageState.ARGUMENTS_IN_PROGRESS
        return self._parser.state

    @property
    def current_message(self) -> Message | None:
        """The message whose arguments are currently being read."""
        return self._cursor.message if self._cursor is not None else None

    @property
    def processing_paused(self) -> bool:
        return self._pause_processing

    def stats(self) -> dict[str, Any]:
        return {
            "messages_received": self.messages_received,
            "integrity_failures": self.integrity_failures,
            "dropped_during_wait": self.dropped_during_wait,
            "overflows": self._parser.overflows,
            "dropped_bytes": self._parser.dropped_bytes,
            "last_error": self.last_error.value if self.last_error else None,
        }

    # ─── CALLBACKS ───────────────────────────────────────────────────

    def attach(self, command_id: int, handler: Handler) -> None:
        """Call ``handler`` for every received command with ``command_id``."""
        self._callbacks.attach(command_id, handler)

    def attach_default(self, handler: Handler | None) -> None:
        """Call ``handler`` for commands without a dedicated handler."""
        self._callbacks.attach_default(handler)

    # ─── RECEIVING ───────────────────────────────────────────────────

    def _take_message(self) -> ArgumentCursor | None:
        message = self._parser.begin()
        if message is None:
            return None
        if message.truncated:
            self.last_error = ErrorKind.FRAMING_OVERFLOW
        if not verify_check_value(message, self._codec, self._receive_crc):
            self.integrity_failures += 1
            self.last_error = ErrorKind.INTEGRITY_FAILURE
            logger.warning("Integrity check failed, dropping %r", message)
            return None
        self.messages_received += 1
        return ArgumentCursor(message, self._codec)

    def _pump(self, deadline: float | None = None) -> ArgumentCursor | None:
        """Read the channel until one valid message completes or it runs dry.

        With a ``deadline`` the read also stops once the clock passes it,
        even if the channel still has data.
        """
        while self._channel.available():
            byte = self._channel.read_byte()
            if byte is None:
                break
            if self._parser.feed(byte) is MessageState.MESSAGE_COMPLETE:
                cursor = self._take_message()
                if cursor is not None:
                    return cursor
            if deadline is not None and self._clock() >= deadline:
                break
        return None

    def _handle_message(self, cursor: ArgumentCursor) -> None:
        self._cursor = cursor
        command_id = cursor.command_id()
        handler = self._callbacks.lookup(command_id)
        if handler is None:
            logger.debug("No handler for command %s", command_id)
            return
        logger.debug("Dispatching command %s", command_id)
        self._dispatching = True
        try:
            handler()
        finally:
            self._dispatching = False

    def feed_incoming(self) -> int:
        """Drain the channel, dispatching every complete message.

        Does nothing while a command is being sent or awaited, or when
        called from inside a handler.

        Returns:
            Number of messages dispatched.
        """
        dispatched = 0
        while not self._pause_processing and not self._dispatching:
            cursor = self._pump()
            if cursor is None:
                break
            self._handle_message(cursor)
            dispatched += 1
        return dispatched

    # ─── ARGUMENTS ───────────────────────────────────────────────────

    def _read(self, name: str, default: Any, *args: Any) -> Any:
        cursor = self._cursor
        if cursor is None:
            return default
        value = getattr(cursor, name)(*args)
        if cursor.last_error is not None:
            self.last_error = cursor.last_error
            cursor.last_error = None
        return value

    def next(self) -> bool:
        """Advance to the next argument of the current command."""
        return self._cursor is not None and self._cursor.next()

    def available(self) -> bool:
        return self._cursor is not None and self._cursor.available()

    def is_arg_ok(self) -> bool:
        return self._cursor is not None and self._cursor.is_arg_ok()

    def command_id(self) -> int | None:
        return self._cursor.command_id() if self._cursor is not None else None

    def read_bool_arg(self) -> bool:
        return self._read("read_bool_arg", False)

    def read_int16_arg(self) -> int:
        return self._read("read_int16_arg", 0)

    def read_int32_arg(self) -> int:
        return self._read("read_int32_arg", 0)

    def read_char_arg(self) -> str:
        return self._read("read_char_arg", "")

    def read_float_arg(self) -> float:
        return self._read("read_float_arg", 0.0)

    def read_double_arg(self) -> float:
        return self._read("read_double_arg", 0.0)

    def read_string_arg(self) -> str:
        return self._read("read_string_arg", "")

    def read_bytes_arg(self) -> bytes:
        return self._read("read_bytes_arg", b"")

    def copy_string_arg(self, size: int) -> str:
        return self._read("copy_string_arg", "", size)

    def compare_string_arg(self, expected: str) -> bool:
        return self._read("compare_string_arg", False, expected)

    def read_bin_arg(self, value_type: FixedWidth) -> Any:
        return self._read("read_bin_arg", value_type.default, value_type)

    # ─── SENDING ─────────────────────────────────────────────────────

    def print_lf_cr(self, add_newline: bool = True) -> None:
        """Append ``\\r\\n`` after every sent command (readable in a terminal)."""
        self._composer.print_newlines = add_newline

    def send_cmd_start(self, command_id: int, buffered: bool = False) -> bool:
        """Begin a multi-argument command; incoming processing pauses until the end."""
        if self._composer.in_progress:
            return False
        self._pause_processing = True
        if not self._composer.start(command_id, buffered):
            self.last_error = ErrorKind.SEND_BUFFER_EXHAUSTED
            return False
        return True

    def _arg_result(self, ok: bool) -> bool:
        if not ok and self._composer.failed:
            self.last_error = ErrorKind.SEND_BUFFER_EXHAUSTED
        return ok

    def send_cmd_arg(self, value: Any, precision: int | None = None) -> bool:
        """Add a text argument; floats use ``precision`` decimals if given."""
        return self._arg_result(self._composer.arg(value, precision))

    def send_cmd_esc_arg(self, text: str) -> bool:
        return self._arg_result(self._composer.esc_arg(text))

    def send_cmd_sci_arg(self, value: float, digits: int = 6) -> bool:
        return self._arg_result(self._composer.sci_arg(value, digits))

    def send_cmd_fmt_arg(self, fmt: str, *args: Any) -> bool:
        return self._arg_result(self._composer.fmt_arg(fmt, *args))

    def send_cmd_bin_arg(self, value: Any, value_type: FixedWidth) -> bool:
        return self._arg_result(self._composer.bin_arg(value, value_type))

    def send_cmd_end(
        self,
        req_ack: bool = False,
        ack_id: int = DEFAULT_ACK_ID,
        timeout_ms: int | None = None,
    ) -> bool:
        """Finish the command and optionally wait for an acknowledgment.

        A buffered command that requires an acknowledgment is flushed,
        together with everything staged before it, before waiting.

        Returns:
            ``False`` if no command was in progress, the send buffer was
            exhausted, or the acknowledgment did not arrive in time.
        """
        if not self._composer.in_progress:
            return False
        buffered = self._composer.buffered
        ok = self._composer.end()
        if not ok:
            self.last_error = ErrorKind.SEND_BUFFER_EXHAUSTED
        elif req_ack:
            if buffered:
                self._composer.flush()
            ok = self._blocked_till_reply(timeout_ms, ack_id)
        self._pause_processing = False
        return ok

    def send_cmd(
        self,
        command_id: int,
        *args: Any,
        buffered: bool = False,
        req_ack: bool = False,
        ack_id: int = DEFAULT_ACK_ID,
        timeout_ms: int | None = None,
    ) -> bool:
        """Send a command with zero or more text arguments."""
        if self._composer.in_progress:
            return False
        self.send_cmd_start(command_id, buffered)
        for arg in args:
            self.send_cmd_arg(arg)
        return self.send_cmd_end(req_ack, ack_id, timeout_ms)

    def send_bin_cmd(
        self,
        command_id: int,
        value: Any,
        value_type: FixedWidth,
        *,
        buffered: bool = False,
        req_ack: bool = False,
        ack_id: int = DEFAULT_ACK_ID,
        timeout_ms: int | None = None,
    ) -> bool:
        """Send a command with a single binary argument."""
        if self._composer.in_progress:
            return False
        self.send_cmd_start(command_id, buffered)
        self.send_cmd_bin_arg(value, value_type)
        return self.send_cmd_end(req_ack, ack_id, timeout_ms)

    def send_buffered_cmd(self) -> int:
        """Write all buffered commands to the channel in one go.

        Returns:
            Number of bytes written.
        """
        return self._composer.flush()

    def discard_buffered_cmd(self) -> None:
        """Drop staged bytes, required after a send buffer overflow."""
        self._composer.discard()

    # ─── ACKNOWLEDGMENT ──────────────────────────────────────────────

    def _check_for_ack(self, ack_id: int, deadline: float) -> bool:
        while True:
            cursor = self._pump(deadline)
            if cursor is None:
                return False
            if cursor.command_id() == ack_id:
                self._cursor = cursor
                logger.debug("Received acknowledgment %d", ack_id)
                return True
            self.dropped_during_wait += 1
            logger.debug(
                "Dropped command %s while waiting for acknowledgment %d",
                cursor.command_id(),
                ack_id,
            )
            if self._clock() >= deadline:
                return False

    def _blocked_till_reply(self, timeout_ms: int | None, ack_id: int) -> bool:
        if timeout_ms is None:
            timeout_ms = self._config.default_timeout_ms
        deadline = self._clock() + timeout_ms / 1000.0
        while True:
            if self._check_for_ack(ack_id, deadline):
                return True
            if self._clock() >= deadline:
                break
            self._sleep(self._config.poll_interval)

        logger.warning("No acknowledgment %d within %d ms", ack_id, timeout_ms)
        self.last_error = ErrorKind.ACK_TIMEOUT
        self._parser.reset()
        return False
