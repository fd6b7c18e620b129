"""Connection — one authenticated client socket with a bounded outbound queue."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sharedrive.drive.types import Principal

logger = logging.getLogger(__name__)

DEFAULT_OUTBOX_SIZE = 256


class ConnectionState(Enum):
    """Lifecycle of a connection.  ``DISCONNECTED`` is terminal."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """An event pushed to a client: name plus JSON-safe payload."""

    event: str
    data: Any


class Connection:
    """Server-side handle of a client socket.

    Delivery is best effort: ``send`` never blocks, and when the outbox is
    full the oldest pending message is dropped to make room.  The transport
    drains the outbox with ``receive``.
    """

    def __init__(self, principal: Principal, *, outbox_size: int = DEFAULT_OUTBOX_SIZE) -> None:
        self.id = uuid.uuid4().hex
        self.principal = principal
        self.state = ConnectionState.CONNECTING
        self.dropped = 0
        self._outbox: asyncio.Queue[OutboundMessage] = asyncio.Queue(maxsize=max(outbox_size, 1))

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, user={self.user_id!r}, state={self.state.value})"

    @property
    def user_id(self) -> str:
        return self.principal.id

    @property
    def user_data(self) -> dict[str, Any]:
        """``{id, name, email}`` as shown to other clients."""
        return self.principal.summary().to_dict()

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def send(self, event: str, data: Any) -> bool:
        """Queue *event* for the client.  Returns False if the connection is closed."""
        if self.state is ConnectionState.DISCONNECTED:
            return False
        message = OutboundMessage(event, data)
        while True:
            try:
                self._outbox.put_nowait(message)
                return True
            except asyncio.QueueFull:
                dropped = self._outbox.get_nowait()
                self.dropped += 1
                logger.warning(
                    "Outbox full for connection %s; dropped %s", self.id, dropped.event
                )

    async def receive(self) -> OutboundMessage:
        """Wait for the next outbound message."""
        return await self._outbox.get()

    def drain(self) -> list[OutboundMessage]:
        """Remove and return every pending message without waiting."""
        messages: list[OutboundMessage] = []
        while not self._outbox.empty():
            messages.append(self._outbox.get_nowait())
        return messages

    def pending(self) -> int:
        return self._outbox.qsize()
