"""Protocol layer: escaping, framing, argument parsing, and command composition."""

from .escaping import EscapeCodec
from .framing import CommandParser, Message, MessageState, verify_check_value
from .parser import ArgumentCursor
from .composer import SendBuffer, SendComposer
from .commands import CallbackTable
from .errors import ErrorKind
