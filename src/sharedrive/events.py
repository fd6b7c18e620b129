"""EventBus and event types for fanning state changes out to the realtime hub."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of drive events that trigger notifications."""

    RESOURCE_SHARED = "resource_shared"
    FILE_UPLOADED = "file_uploaded"
    RESOURCE_DELETED = "resource_deleted"
    VERSION_PUSHED = "version_pushed"
    VERSION_RESTORED = "version_restored"


@dataclass(frozen=True, slots=True)
class DriveEvent:
    """Immutable record of a committed drive mutation.

    Attributes:
        event_type: The kind of mutation that occurred.
        resource_id: Id of the affected file or folder.
        resource_type: ``"file"`` or ``"folder"``.
        actor: ``{id, name, email}`` of the user who caused the change.
        target_user_id: Recipient for point-to-point events (shares).
        payload: Event-specific extra data.
    """

    event_type: EventType
    resource_id: str
    resource_type: str = "file"
    actor: dict[str, Any] = field(default_factory=dict)
    target_user_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


class EventBus:
    """Fans drive events out to subscribers, in subscription order.

    A subscriber that raises is logged and skipped.  The mutation that
    produced the event has already been applied, so a failure here costs a
    notification and never the operation.
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[Callable[..., Any]]] = {et: [] for et in EventType}

    def subscribe(self, handler: Callable[..., Any], *event_types: EventType) -> None:
        """Subscribe *handler* to *event_types*, or to every event type when none are given."""
        for event_type in event_types or tuple(EventType):
            self._subscribers[event_type].append(handler)

    async def emit(self, event: DriveEvent) -> None:
        """Await each subscriber of ``event.event_type`` in turn."""
        subscribers = self._subscribers[event.event_type]
        if not subscribers:
            logger.debug("No subscribers for %s", event.event_type.value)
            return
        for handler in subscribers:
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s %s",
                    handler,
                    event.event_type.value,
                    event.resource_type,
                    event.resource_id,
                    exc_info=True,
                )
