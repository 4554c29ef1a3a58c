"""Command based messaging over serial links.

Commands are an identifier plus escaped text or binary arguments,
optionally protected by a CRC-16 check field::

    42,hello,/;x;
"""

from .config import MessengerConfig
from .messenger import CmdMessenger
from .protocol.errors import ErrorKind
from .protocol.framing import MessageState
from .transport.memory import MemoryChannel
from .utils.crc import CrcPolynomial

__version__ = "0.1.0"
__all__ = [
    "CmdMessenger",
    "CrcPolynomial",
    "ErrorKind",
    "MemoryChannel",
    "MessageState",
    "MessengerConfig",
]
