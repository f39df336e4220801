"""
Event bus for outbound simulation events.
Decouples the engine from the real-time transport via pub/sub.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Any, Optional, Tuple

from dkasim.models.events import SimEvent, SimEventType

logger = logging.getLogger(__name__)

Subscriber = Callable[[SimEvent], Any]


class EventPublisher(ABC):
    """What the engine needs from the transport: fire-and-forget emission."""

    @abstractmethod
    def emit(self, event: SimEvent) -> None:
        pass


class EventBus(EventPublisher):
    """
    Event bus for simulation events.

    Supports:
    - Synchronous, non-blocking emission from inside a tick
    - Subscribing to specific event types or to everything
    - Priority-based handler ordering
    """

    def __init__(self):
        """Initialize the event bus."""
        self._subscribers: Dict[SimEventType, List[Tuple[int, Subscriber]]] = {}
        self._global_subscribers: List[Tuple[int, Subscriber]] = []
        self._pending_tasks: set = set()

        # Initialize subscriber lists for all event types
        for event_type in SimEventType:
            self._subscribers[event_type] = []

        logger.info("EventBus initialized")

    def _subscribers_for(self, event: SimEvent) -> List[Subscriber]:
        entries = self._subscribers.get(event.event_type, []) + self._global_subscribers
        entries = sorted(entries, key=lambda entry: entry[0], reverse=True)
        return [callback for _, callback in entries]

    def emit(self, event: SimEvent) -> None:
        """
        Emit an event without blocking.

        Sync subscribers run inline; async subscribers are scheduled on the
        running loop and never awaited here.

        Args:
            event: The event to emit
        """
        logger.debug(f"Emitting event: {event.event_type.value} for session {event.session_id}")

        for callback in self._subscribers_for(event):
            if asyncio.iscoroutinefunction(callback):
                self._schedule(callback, event)
            else:
                self._safe_call_sync(callback, event)

    def _schedule(self, callback: Subscriber, event: SimEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, dropping async delivery of {event.event_type.value}")
            return
        task = loop.create_task(self._safe_call(callback, event))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _safe_call(self, callback: Subscriber, event: SimEvent) -> None:
        """Safely call an async callback, catching exceptions."""
        try:
            await callback(event)
        except Exception as e:
            logger.error(f"Error in event callback: {e}", exc_info=True)

    def _safe_call_sync(self, callback: Subscriber, event: SimEvent) -> None:
        """Safely call a sync callback."""
        try:
            callback(event)
        except Exception as e:
            logger.error(f"Error in sync event callback: {e}", exc_info=True)

    def subscribe(
        self,
        event_type: SimEventType,
        callback: Subscriber,
        priority: int = 5
    ) -> None:
        """
        Subscribe to a specific event type.

        Args:
            event_type: Type of event to subscribe to
            callback: Function to call when event occurs
            priority: Handler priority (1-10, 10 = highest)
        """
        subscribers = self._subscribers.setdefault(event_type, [])
        if all(cb != callback for _, cb in subscribers):
            subscribers.append((priority, callback))
            logger.debug(f"Subscribed to {event_type.value} with priority {priority}")

    def subscribe_all(self, callback: Subscriber, priority: int = 5) -> None:
        """
        Subscribe to all events.

        Args:
            callback: Function to call for any event
            priority: Handler priority (1-10, 10 = highest)
        """
        if all(cb != callback for _, cb in self._global_subscribers):
            self._global_subscribers.append((priority, callback))
            logger.debug(f"Subscribed to all events with priority {priority}")

    def unsubscribe(self, event_type: SimEventType, callback: Subscriber) -> None:
        """Unsubscribe from an event type."""
        if event_type in self._subscribers:
            self._subscribers[event_type] = [
                entry for entry in self._subscribers[event_type] if entry[1] != callback
            ]

    def unsubscribe_all(self, callback: Subscriber) -> None:
        """Remove a callback from all subscriptions."""
        self._global_subscribers = [e for e in self._global_subscribers if e[1] != callback]
        for event_type in self._subscribers:
            self.unsubscribe(event_type, callback)

    def get_subscriber_count(self, event_type: Optional[SimEventType] = None) -> int:
        """Get number of subscribers for an event type or total."""
        if event_type:
            return len(self._subscribers.get(event_type, []))
        return sum(len(subs) for subs in self._subscribers.values()) + len(self._global_subscribers)


# Singleton instance
_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the singleton event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
