"""
Event bus for Entropy Protocol session changes.

Decouples the session store and the replication nodes from whatever renders
them. Each node owns its own bus; there is no process-wide instance.

Usage:
    from .event_bus import EventBus, EventType

    bus = EventBus()
    bus.on(EventType.STATE_REPLACED, my_handler)

    # Emitted by nodes whenever their replica changes
    bus.emit(EventType.STATE_REPLACED, session=session, players=players)

    def my_handler(event: BusEvent):
        print(event.data["session"].phase)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Things that can happen to a session or a node."""

    # Roster
    PLAYER_JOINED = "player.joined"
    PLAYER_RENAMED = "player.renamed"
    PLAYER_LEFT = "player.left"
    ROLE_ASSIGNED = "role.assigned"

    # Game flow
    GAME_STARTED = "game.started"
    DISASTER_STRUCK = "game.disaster"
    ACTION_APPLIED = "game.action"
    GAME_ENDED = "game.ended"

    # Replication
    STATUS_CHANGED = "net.status"
    STATE_REPLACED = "net.state"
    STALE_BROADCAST = "net.stale"
    REQUEST_REJECTED = "net.rejected"


@dataclass
class BusEvent:
    """
    Event payload for the event bus.

    Attributes:
        type: The event type
        data: Event-specific payload
        lobby_code: Lobby the event belongs to, if known
        timestamp: When the event was emitted
    """

    type: EventType
    data: dict = field(default_factory=dict)
    lobby_code: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


EventHandler = Callable[[BusEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners run immediately inside emit(). Listeners that need to await
    should schedule a task themselves.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: dict[EventType, list[EventHandler]] = {}
        self._history: list[BusEvent] = []
        self._history_limit = history_limit

    def on(self, event_type: EventType, handler: EventHandler) -> Callable[[], None]:
        """
        Subscribe to an event type.

        Returns:
            A callable that removes the subscription
        """
        handlers = self._listeners.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.off(event_type, handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe from an event type."""
        if event_type in self._listeners and handler in self._listeners[event_type]:
            self._listeners[event_type].remove(handler)

    def emit(self, event_type: EventType, lobby_code: str = "", **data) -> BusEvent:
        """
        Emit an event to all subscribers.

        Returns:
            The emitted BusEvent (for chaining/testing)
        """
        event = BusEvent(type=event_type, data=data, lobby_code=lobby_code)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit:]

        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                # One bad listener shouldn't break the others
                logger.exception("Error in handler for %s", event_type.value)

        return event

    def clear(self) -> None:
        """Clear all listeners."""
        self._listeners.clear()

    def get_history(self, event_type: EventType | None = None) -> list[BusEvent]:
        """Recent events, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, []))
