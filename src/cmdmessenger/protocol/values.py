"""Fixed-width binary value types.

Binary arguments travel as the little-endian bytes of the value (escaped
on the wire). Each type declares its width so a received field of the
wrong length is rejected instead of being reinterpreted.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FixedWidth:
    """A primitive type with an exact little-endian byte layout."""

    name: str
    fmt: str
    default: Any = 0

    @property
    def width(self) -> int:
        return struct.calcsize(self.fmt)

    def encode(self, value: Any) -> bytes:
        """Pack ``value``.

        Raises:
            ValueError: If the value does not fit the type.
        """
        try:
            return struct.pack(self.fmt, value)
        except struct.error as e:
            raise ValueError(f"Cannot encode {value!r} as {self.name}: {e}") from e

    def decode(self, data: bytes) -> Any:
        """Unpack exactly :attr:`width` bytes.

        Raises:
            ValueError: If ``data`` has the wrong length.
        """
        if len(data) != self.width:
            raise ValueError(
                f"{self.name} needs {self.width} bytes, got {len(data)}"
            )
        return struct.unpack(self.fmt, data)[0]

    def __repr__(self) -> str:
        return f"FixedWidth({self.name}, width={self.width})"


BOOL = FixedWidth("bool", "<?", False)
CHAR = FixedWidth("char", "<c", b"\x00")
INT8 = FixedWidth("int8", "<b")
UINT8 = FixedWidth("uint8", "<B")
INT16 = FixedWidth("int16", "<h")
UINT16 = FixedWidth("uint16", "<H")
INT32 = FixedWidth("int32", "<i")
UINT32 = FixedWidth("uint32", "<I")
INT64 = FixedWidth("int64", "<q")
UINT64 = FixedWidth("uint64", "<Q")
FLOAT = FixedWidth("float", "<f", 0.0)
DOUBLE = FixedWidth("double", "<d", 0.0)

VALUE_TYPES: dict[str, FixedWidth] = {
    t.name: t
    for t in (BOOL, CHAR, INT8, UINT8, INT16, UINT16, INT32, UINT32, INT64, UINT64, FLOAT, DOUBLE)
}


def value_type(name: str) -> FixedWidth:
    """Look up a value type by name (``"int16"``, ``"float"``, ...)."""
    try:
        return VALUE_TYPES[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown value type '{name}'. Valid: {list(VALUE_TYPES)}"
        ) from None
