"""Command identifier to handler table.

Each received message carries a single command ID. Handlers take no
arguments; they pull fields from the messenger that called them.
"""

from __future__ import annotations

from typing import Callable

from ..config import MAX_CALLBACKS

Handler = Callable[[], None]


class CallbackTable:
    """Fixed-capacity mapping from command ID to handler.

    IDs ``0`` to ``capacity - 1`` can be attached. Messages whose ID has
    no handler go to the default handler, if one is set.
    """

    def __init__(self, capacity: int = MAX_CALLBACKS) -> None:
        if capacity < 1:
            raise ValueError(f"Callback capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._handlers: dict[int, Handler] = {}
        self._default: Handler | None = None

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def default(self) -> Handler | None:
        return self._default

    def attach(self, command_id: int, handler: Handler) -> None:
        """Register ``handler`` for ``command_id``, replacing any previous one.

        Raises:
            ValueError: If the ID is outside ``0..capacity-1``.
        """
        if not 0 <= command_id < self._capacity:
            raise ValueError(
                f"Command ID must be 0-{self._capacity - 1}, got {command_id}"
            )
        self._handlers[command_id] = handler

    def attach_default(self, handler: Handler | None) -> None:
        self._default = handler

    def detach(self, command_id: int) -> None:
        self._handlers.pop(command_id, None)

    def lookup(self, command_id: int | None) -> Handler | None:
        """Handler for ``command_id``, falling back to the default handler."""
        if command_id is not None and command_id in self._handlers:
            return self._handlers[command_id]
        return self._default
