"""Recoverable protocol failure kinds.

None of these raise: the operation that hits one returns a failure
status and the messenger records the kind in ``last_error``.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Locally recoverable protocol failures."""

    FRAMING_OVERFLOW = "framing_overflow"  # Message truncated, parser resynchronised
    INTEGRITY_FAILURE = "integrity_failure"  # CRC missing or mismatched, not dispatched
    DECODE_MISMATCH = "decode_mismatch"  # Binary field width differs from the type
    SEND_BUFFER_EXHAUSTED = "send_buffer_exhausted"  # Staging overflow
    ACK_TIMEOUT = "ack_timeout"  # No acknowledgment before the deadline
