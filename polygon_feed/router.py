"""
Event Router for the Polygon stream.

Routes decoded WebSocket frames to handlers registered per event type
("XA", "AM", "status", ...).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from polygon_feed.errors import MessageParseError
from polygon_feed.ports.streaming import EventHandler

logger = logging.getLogger(__name__)


@dataclass
class RouterStats:
    """Statistics for event routing."""

    total_frames: int = 0
    total_events: int = 0
    routed_events: int = 0
    dropped_events: int = 0
    parse_errors: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


class EventRouter:
    """
    Routes incoming stream events to registered handlers.

    Polygon pushes frames as JSON arrays of events:
    [
        {"ev": "status", "status": "auth_success", "message": "authenticated"},
        {"ev": "XA", "pair": "BTC-USD", "o": 1.0, "h": 1.2, "l": 0.9,
         "c": 1.1, "v": 10.5, "s": 1610144640000, "e": 1610144700000}
    ]

    A single event object (not wrapped in a list) is accepted as well.
    Events without a handler are counted and dropped.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._catch_all_handler: Optional[EventHandler] = None
        self._stats = RouterStats()

    @property
    def stats(self) -> RouterStats:
        return self._stats

    def register_handler(self, event_type: str, handler: EventHandler) -> None:
        """
        Register a handler for a specific event type.

        Multiple handlers can be registered for the same type.
        They will be called in registration order.
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Registered handler for {event_type}")

    def register_catch_all(self, handler: EventHandler) -> None:
        """Register a handler that receives every event regardless of type."""
        self._catch_all_handler = handler

    async def route(self, frame: Any, recv_ts: int) -> None:
        """
        Route every event of a decoded frame.

        Args:
            frame: Parsed JSON frame (list of events or a single event)
            recv_ts: Receive timestamp in milliseconds
        """
        self._stats.total_frames += 1

        events = frame if isinstance(frame, list) else [frame]
        for event in events:
            await self._route_event(event, recv_ts)

    async def _route_event(self, event: Any, recv_ts: int) -> None:
        self._stats.total_events += 1

        try:
            event_type = self._classify(event)
        except MessageParseError as e:
            self._stats.parse_errors += 1
            logger.warning(f"Failed to classify event: {e}")
            return

        self._stats.by_type[event_type] = self._stats.by_type.get(event_type, 0) + 1

        if self._catch_all_handler:
            try:
                await self._catch_all_handler(event, recv_ts)
            except Exception as e:
                logger.error(f"Catch-all handler error: {e}")

        handlers = self._handlers.get(event_type, [])
        if not handlers:
            logger.debug(f"No handler for event type: {event_type}")
            self._stats.dropped_events += 1
            return

        self._stats.routed_events += 1
        for handler in handlers:
            try:
                await handler(event, recv_ts)
            except Exception as e:
                logger.error(f"Handler error for {event_type}: {e}", exc_info=True)

    @staticmethod
    def _classify(event: Any) -> str:
        if not isinstance(event, Mapping):
            raise MessageParseError(
                f"Event is not an object: {type(event).__name__}",
                expected_type="object",
            )
        event_type = event.get("ev")
        if not isinstance(event_type, str) or not event_type:
            raise MessageParseError("Event has no 'ev' field", expected_type="ev")
        return event_type

    def get_handler_count(self, event_type: str) -> int:
        """Get number of registered handlers for an event type."""
        return len(self._handlers.get(event_type, []))

    def clear_handlers(self) -> None:
        self._handlers.clear()
        self._catch_all_handler = None

    def reset_stats(self) -> None:
        self._stats = RouterStats()
