"""Byte channels: the interface, an in-memory loopback, and a serial port."""

from .base import Channel
from .memory import MemoryChannel
