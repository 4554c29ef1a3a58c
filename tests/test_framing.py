"""Tests for the incremental message parser and check value verification."""

from cmdmessenger.protocol.composer import SendComposer
from cmdmessenger.protocol.escaping import EscapeCodec
from cmdmessenger.protocol.framing import (
    CommandParser,
    Message,
    MessageState,
    verify_check_value,
)
from cmdmessenger.transport.memory import MemoryChannel
from cmdmessenger.utils.crc import CrcEngine, CrcPolynomial, check_value_bytes, crc16

codec = EscapeCodec()


def _compose(*fields, polynomial=CrcPolynomial.NONE) -> bytes:
    """Wire bytes for a command built with the real composer."""
    channel = MemoryChannel()
    composer = SendComposer(channel, codec, CrcEngine(polynomial))
    composer.start(fields[0])
    for value in fields[1:]:
        composer.arg(value)
    composer.end()
    return channel.take_written()


def test_single_message():
    """A complete command yields one message with its raw bytes."""
    parser = CommandParser(codec)
    messages = parser.feed_bytes(b"42,hello;")
    assert len(messages) == 1
    assert bytes(messages[0].data) == b"42,hello"
    assert messages[0].field_count == 2
    assert not messages[0].truncated


def test_state_transitions():
    """The parser holds the message in MESSAGE_COMPLETE until begin()."""
    parser = CommandParser(codec)
    assert parser.feed(ord("1")) is MessageState.ACCUMULATING
    assert parser.feed(ord(";")) is MessageState.MESSAGE_COMPLETE
    message = parser.begin()
    assert bytes(message.data) == b"1"
    assert parser.state is MessageState.ACCUMULATING
    assert parser.begin() is None


def test_escaped_command_separator_does_not_end_message():
    """An escaped ';' is data."""
    parser = CommandParser(codec)
    messages = parser.feed_bytes(b"1,a/;b;")
    assert [bytes(m.data) for m in messages] == [b"1,a/;b"]


def test_escaped_escape_then_separator_ends_message():
    """'//' is a literal slash, so the following ';' is a real terminator."""
    parser = CommandParser(codec)
    messages = parser.feed_bytes(b"1,a//;2;")
    assert [bytes(m.data) for m in messages] == [b"1,a//", b"2"]


def test_escaped_field_separator_is_not_a_boundary():
    """Only bare field separators are recorded as boundaries."""
    parser = CommandParser(codec)
    (message,) = parser.feed_bytes(b"1,a/,b,c;")
    assert message.boundaries == [1, 6]
    assert message.field_count == 3


def test_empty_messages_ignored():
    """A separator with nothing buffered produces no message."""
    parser = CommandParser(codec)
    messages = parser.feed_bytes(b";;1;")
    assert [bytes(m.data) for m in messages] == [b"1"]


def test_leading_line_breaks_skipped():
    """CR/LF after a terminator (print_newlines peers) is not part of the next message."""
    parser = CommandParser(codec)
    messages = parser.feed_bytes(b"1;\r\n2,x;\r\n")
    assert [bytes(m.data) for m in messages] == [b"1", b"2,x"]


def test_overflow_truncates_and_resynchronises():
    """Capacity 8: the message is cut at 7 bytes and the tail is dropped."""
    parser = CommandParser(codec, capacity=8)
    messages = parser.feed_bytes(b"12345678901;5;")
    assert [bytes(m.data) for m in messages] == [b"1234567", b"5"]
    assert messages[0].truncated
    assert not messages[1].truncated
    assert parser.overflows == 1


def test_overflow_resync_ignores_escaped_separator():
    """While resynchronising an escaped ';' does not end the skipped message."""
    parser = CommandParser(codec, capacity=4)
    messages = parser.feed_bytes(b"1234/;56;7;")
    assert [bytes(m.data) for m in messages] == [b"123", b"7"]


def test_never_exceeds_capacity():
    """A separator-free stream longer than the buffer never overruns it."""
    parser = CommandParser(codec, capacity=16)
    for _ in range(1000):
        if parser.feed(ord("x")) is MessageState.MESSAGE_COMPLETE:
            message = parser.begin()
            assert len(message.data) <= 15
        assert parser.buffered <= 15


def test_collision_drops_second_message():
    """Bytes arriving before the held message is taken are dropped whole."""
    parser = CommandParser(codec)
    for byte in b"1;2,x;":
        parser.feed(byte)
    assert parser.state is MessageState.MESSAGE_COMPLETE
    assert parser.dropped_bytes == 4
    assert bytes(parser.begin().data) == b"1"
    assert [bytes(m.data) for m in parser.feed_bytes(b"3;")] == [b"3"]


def test_collision_never_parses_truncated_tail():
    """A message cut by a collision is skipped up to its terminator."""
    parser = CommandParser(codec)
    for byte in b"1;2,x":
        parser.feed(byte)
    parser.begin()
    messages = parser.feed_bytes(b"yz;4;")
    assert [bytes(m.data) for m in messages] == [b"4"]


def test_line_break_after_held_message_is_not_a_collision():
    """A trailing CR/LF while a message is held does not cost the next one."""
    parser = CommandParser(codec)
    for byte in b"1;\r\n":
        parser.feed(byte)
    assert parser.dropped_bytes == 0
    assert bytes(parser.begin().data) == b"1"
    assert [bytes(m.data) for m in parser.feed_bytes(b"2;")] == [b"2"]


def test_reset_discards_partial_message():
    """reset() forgets bytes of an unfinished message."""
    parser = CommandParser(codec)
    parser.feed_bytes(b"12,ab")
    parser.reset()
    assert parser.buffered == 0
    assert [bytes(m.data) for m in parser.feed_bytes(b"3;")] == [b"3"]


def test_custom_separators():
    """Framing follows the codec's characters."""
    parser = CommandParser(EscapeCodec(ord("|"), ord("\n"), ord("\\")))
    messages = parser.feed_bytes(b"1|a\\\nb\n2\n")
    assert [bytes(m.data) for m in messages] == [b"1|a\\\nb", b"2"]


def test_ccitt_check_field_appended():
    """'5,x;' with CCITT carries the CRC of '5,x' as an extra escaped field."""
    wire = _compose(5, "x", polynomial=CrcPolynomial.CCITT)
    check = check_value_bytes(crc16(b"5,x", CrcPolynomial.CCITT))
    assert wire == b"5,x," + codec.escape(check) + b";"


def test_verify_check_value_strips_field():
    """A valid check field is verified and hidden from the arguments."""
    wire = _compose(5, "a,b", 7, polynomial=CrcPolynomial.CCITT)
    (message,) = CommandParser(codec).feed_bytes(wire)
    assert verify_check_value(message, codec, CrcEngine(CrcPolynomial.CCITT))
    assert bytes(message.data[: message.end]) == b"5,a/,b,7"
    assert message.check_value == crc16(b"5,a,b,7", CrcPolynomial.CCITT)
    assert message.field_count == 3


def test_verify_detects_flipped_bit():
    """Changing any data byte makes verification fail."""
    wire = bytearray(_compose(5, "x", polynomial=CrcPolynomial.CCITT))
    wire[2] ^= 0x01  # 'x' -> 'y'
    (message,) = CommandParser(codec).feed_bytes(bytes(wire))
    assert not verify_check_value(message, codec, CrcEngine(CrcPolynomial.CCITT))


def test_verify_rejects_missing_check_field():
    """With a CRC configured, a message without a check field fails."""
    message = Message(bytearray(b"5"))
    assert not verify_check_value(message, codec, CrcEngine(CrcPolynomial.CCITT))


def test_verify_without_crc_accepts_everything():
    """With no polynomial the message is left untouched."""
    message = Message(bytearray(b"5,x"))
    assert verify_check_value(message, codec, CrcEngine(CrcPolynomial.NONE))
    assert message.end == 3
