"""
Stream event handlers.

Handlers parse Polygon event objects into normalized internal dataclasses:
- AggregateHandler: per-minute/per-second aggregates ("XA", "XAS", "AM", "A")
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Mapping, Optional, TypeVar

from polygon_feed.errors import MessageParseError
from polygon_feed.types import Bar, StreamEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class HandlerStats:
    """Statistics for an event handler."""

    events_received: int = 0
    events_processed: int = 0
    events_skipped: int = 0
    parse_errors: int = 0
    by_channel: dict[str, int] = field(default_factory=dict)


class BaseHandler(ABC, Generic[T]):
    """
    Abstract base class for event handlers.

    Each handler:
    1. Receives a raw event mapping from the router
    2. Parses it into an internal dataclass
    3. Calls the registered callback with the normalized value
    """

    def __init__(
        self,
        on_event: Callable[[T], Awaitable[None]],
        name: str = "handler",
    ) -> None:
        self._on_event = on_event
        self._name = name
        self._stats = HandlerStats()

    @property
    def stats(self) -> HandlerStats:
        return self._stats

    async def handle(self, event: Mapping[str, Any], recv_ts: int) -> None:
        """Handle an incoming event. Parse errors are logged and the event dropped."""
        self._stats.events_received += 1

        try:
            parsed = self._parse(event, recv_ts)
        except MessageParseError as e:
            self._stats.parse_errors += 1
            logger.warning(f"[{self._name}] Parse error: {e}")
            return

        if parsed is None:
            self._stats.events_skipped += 1
            return

        self._stats.events_processed += 1
        channel = self._get_channel(parsed)
        if channel:
            self._stats.by_channel[channel] = self._stats.by_channel.get(channel, 0) + 1

        await self._on_event(parsed)

    @abstractmethod
    def _parse(self, event: Mapping[str, Any], recv_ts: int) -> Optional[T]:
        """Parse the event. Return None to skip."""
        ...

    @abstractmethod
    def _get_channel(self, parsed: T) -> Optional[str]:
        """Extract channel from the parsed value for statistics."""
        ...

    def reset_stats(self) -> None:
        self._stats = HandlerStats()


def _safe_float(value: Any, field_name: str) -> float:
    """Safely convert a value to float."""
    try:
        if isinstance(value, float):
            return value
        return float(value)
    except (ValueError, TypeError) as e:
        raise MessageParseError(
            f"Invalid float value for {field_name}: {value}",
            expected_type="float",
        ) from e


def _safe_int(value: Any, field_name: str) -> int:
    """Safely convert a value to int."""
    try:
        return int(value)
    except (ValueError, TypeError) as e:
        raise MessageParseError(
            f"Invalid integer value for {field_name}: {value}",
            expected_type="int",
        ) from e


class AggregateHandler(BaseHandler[StreamEvent]):
    """
    Handler for aggregate events.

    Crypto aggregate format:
    {
        "ev": "XA",              // Event type
        "pair": "BTC-USD",       // Crypto pair (stocks use "sym")
        "o": 16800.0,            // Open price
        "h": 16860.0,            // High price
        "l": 16790.0,            // Low price
        "c": 16850.5,            // Close price
        "v": 100.5,              // Volume
        "s": 1672515780000,      // Bucket start (Unix ms)
        "e": 1672515840000       // Bucket end (Unix ms)
    }

    The channel of an event is "<ev>.<pair>", matching the channel the
    subscriber asked for.
    """

    def __init__(self, on_event: Callable[[StreamEvent], Awaitable[None]]) -> None:
        super().__init__(on_event, name="AggregateHandler")

    def _parse(self, event: Mapping[str, Any], recv_ts: int) -> Optional[StreamEvent]:
        event_type = event.get("ev")
        symbol = event.get("pair") or event.get("sym")
        if not event_type or not symbol:
            raise MessageParseError(
                "Aggregate event without type or symbol",
                expected_type="aggregate",
            )

        bar = Bar(
            time=_safe_int(event.get("s"), "s"),
            open=_safe_float(event.get("o"), "o"),
            high=_safe_float(event.get("h"), "h"),
            low=_safe_float(event.get("l"), "l"),
            close=_safe_float(event.get("c"), "c"),
            volume=_safe_float(event.get("v"), "v"),
        )
        return StreamEvent(channel=f"{event_type}.{symbol}", bar=bar, recv_ts=recv_ts)

    def _get_channel(self, parsed: StreamEvent) -> Optional[str]:
        return parsed.channel
