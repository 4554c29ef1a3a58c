"""Shared helpers: CRC-16 calculation."""

from .crc import CrcEngine, CrcPolynomial, crc16
