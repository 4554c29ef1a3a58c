"""Table-driven CRC-16 engine.

Seven polynomial choices are supported, matching the set a microcontroller
peer can select:

==========  ======  ======  =========  ======  =====================
Name        Poly    Init    Reflected  XorOut  Check ("123456789")
==========  ======  ======  =========  ======  =====================
NONE        -       -       -          -       0 (disabled)
CCITT       0x1021  0xFFFF  no         0x0000  0x29B1
MCRF4XX     0x1021  0xFFFF  yes        0x0000  0x6F91
KERMIT      0x1021  0x0000  yes        0x0000  0x2189
MODBUS      0x8005  0xFFFF  yes        0x0000  0x4B37
XMODEM      0x1021  0x0000  no         0x0000  0x31C3
X25         0x1021  0xFFFF  yes        0xFFFF  0x906E
==========  ======  ======  =========  ======  =====================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class CrcPolynomial(IntEnum):
    """Selectable 16-bit CRC variants."""

    NONE = 0
    CCITT = 1
    MCRF4XX = 2
    KERMIT = 3
    MODBUS = 4
    XMODEM = 5
    X25 = 6


@dataclass(frozen=True)
class CrcParameters:
    """Rocksoft-model parameters of a CRC-16 variant."""

    poly: int
    init: int
    reflected: bool
    xor_out: int


CRC_PARAMETERS: dict[CrcPolynomial, CrcParameters] = {
    CrcPolynomial.CCITT: CrcParameters(0x1021, 0xFFFF, False, 0x0000),
    CrcPolynomial.MCRF4XX: CrcParameters(0x1021, 0xFFFF, True, 0x0000),
    CrcPolynomial.KERMIT: CrcParameters(0x1021, 0x0000, True, 0x0000),
    CrcPolynomial.MODBUS: CrcParameters(0x8005, 0xFFFF, True, 0x0000),
    CrcPolynomial.XMODEM: CrcParameters(0x1021, 0x0000, False, 0x0000),
    CrcPolynomial.X25: CrcParameters(0x1021, 0xFFFF, True, 0xFFFF),
}

CHECK_VALUE_SIZE = 2
DISABLED_VALUE = 0


def _reflect16(value: int) -> int:
    result = 0
    for _ in range(16):
        result = (result << 1) | (value & 1)
        value >>= 1
    return result


def _build_table(params: CrcParameters) -> tuple[int, ...]:
    table = []
    if params.reflected:
        poly = _reflect16(params.poly)
        for i in range(256):
            crc = i
            for _ in range(8):
                crc = (crc >> 1) ^ poly if crc & 1 else crc >> 1
            table.append(crc)
    else:
        for i in range(256):
            crc = i << 8
            for _ in range(8):
                if crc & 0x8000:
                    crc = ((crc << 1) ^ params.poly) & 0xFFFF
                else:
                    crc = (crc << 1) & 0xFFFF
            table.append(crc)
    return tuple(table)


_TABLES: dict[CrcPolynomial, tuple[int, ...]] = {
    polynomial: _build_table(params) for polynomial, params in CRC_PARAMETERS.items()
}


class CrcEngine:
    """Incremental CRC-16 accumulator.

    Usage::

        engine = CrcEngine(CrcPolynomial.CCITT)
        engine.update(b"5")
        engine.update(b",x")
        check = engine.value

    With ``CrcPolynomial.NONE`` every operation is a no-op and ``value``
    stays at the sentinel ``0``.
    """

    def __init__(self, polynomial: CrcPolynomial = CrcPolynomial.NONE) -> None:
        self._polynomial = CrcPolynomial(polynomial)
        self._params = CRC_PARAMETERS.get(self._polynomial)
        self._table = _TABLES.get(self._polynomial)
        self._register = self._params.init if self._params else DISABLED_VALUE

    @property
    def polynomial(self) -> CrcPolynomial:
        return self._polynomial

    @property
    def enabled(self) -> bool:
        return self._params is not None

    @property
    def value(self) -> int:
        """Current check value (after the final XOR)."""
        if self._params is None:
            return DISABLED_VALUE
        return self._register ^ self._params.xor_out

    def reset(self) -> None:
        """Clear the accumulator back to the polynomial's initial value."""
        if self._params is not None:
            self._register = self._params.init

    def update(self, data: bytes | bytearray | int) -> int:
        """Feed bytes through the accumulator and return the running value.

        Args:
            data: Bytes to add, or a single byte value 0-255.
        """
        if self._params is None:
            return DISABLED_VALUE
        if isinstance(data, int):
            data = bytes([data])

        crc = self._register
        table = self._table
        if self._params.reflected:
            for byte in data:
                crc = (crc >> 8) ^ table[(crc ^ byte) & 0xFF]
        else:
            for byte in data:
                crc = ((crc << 8) & 0xFFFF) ^ table[((crc >> 8) ^ byte) & 0xFF]
        self._register = crc
        return self.value


def crc16(data: bytes, polynomial: CrcPolynomial = CrcPolynomial.CCITT) -> int:
    """Compute a one-shot CRC-16 of ``data`` with the given polynomial."""
    engine = CrcEngine(polynomial)
    return engine.update(data)


def check_value_bytes(value: int) -> bytes:
    """Serialize a check value the way it travels on the wire (little-endian)."""
    return (value & 0xFFFF).to_bytes(CHECK_VALUE_SIZE, "little")
