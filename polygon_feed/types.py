"""
Shared types, enums, and data structures for the datafeed adapter.

This module contains types that are used across multiple components
(resolution mapping, fetching, registry, dispatching and the facade).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

# -------- Aliases --------
UnixMillis = int
ChartResolution = str  # e.g. "1", "60", "1D"
StreamChannel = str  # e.g. "XA.BTC-USD"


# -------- Enums --------


class TimeUnit(str, Enum):
    """Aggregation time units understood by the aggregates endpoint."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"


class DispatcherState(str, Enum):
    """State machine for UpdateDispatcher."""

    UNINITIALIZED = "uninitialized"
    POLLING = "polling"
    STREAMING = "streaming"
    STOPPED = "stopped"


class ConnectionState(str, Enum):
    """State machine for the streaming WebSocket connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSING = "closing"
    CLOSED = "closed"


# -------- Values --------


@dataclass(frozen=True, slots=True)
class AggregationSpec:
    """Provider aggregation parameters derived from a chart resolution."""

    multiplier: int
    time_unit: TimeUnit

    def __post_init__(self) -> None:
        if self.multiplier <= 0:
            raise ValueError("AggregationSpec.multiplier must be > 0.")


@dataclass(frozen=True, slots=True)
class Bar:
    """
    One OHLCV bar as handed to the charting host.

    `time` is always epoch milliseconds. OHLC relations are passed through
    as received from the provider.
    """

    time: UnixMillis
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True, slots=True)
class HistoryMetadata:
    """Metadata reported alongside a history request."""

    no_data: bool


@dataclass(frozen=True)
class InstrumentRef:
    """
    Instrument as known to the charting host.

    Produced once by symbol resolution and treated as immutable thereafter.
    """

    ticker: str
    name: str = ""
    description: str = ""
    type: str = "crypto"
    session: str = "24x7"
    timezone: str = "America/New_York"
    exchange: str = ""
    minmov: int = 1
    pricescale: int = 100
    has_intraday: bool = True
    intraday_multipliers: tuple[str, ...] = ("1", "60")
    volume_precision: int = 8
    data_status: str = "streaming"
    supported_resolutions: tuple[str, ...] = field(default_factory=tuple)

    def to_symbol_info(self) -> dict[str, Any]:
        """Render the host's symbol info mapping."""
        return {
            "name": self.name or self.ticker,
            "ticker": self.ticker,
            "description": self.description,
            "type": self.type,
            "session": self.session,
            "timezone": self.timezone,
            "exchange": self.exchange,
            "minmov": self.minmov,
            "pricescale": self.pricescale,
            "has_intraday": self.has_intraday,
            "intraday_multipliers": list(self.intraday_multipliers),
            "volume_precision": self.volume_precision,
            "data_status": self.data_status,
            "supported_resolutions": list(self.supported_resolutions),
        }


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Single entry returned by symbol search."""

    symbol: str
    ticker: str
    full_name: str
    description: str
    exchange: str
    type: str
    locale: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "ticker": self.ticker,
            "full_name": self.full_name,
            "description": self.description,
            "exchange": self.exchange,
            "type": self.type,
            "locale": self.locale,
        }


BarCallback = Callable[[Bar], Union[None, Awaitable[None]]]


@dataclass(eq=False)
class Subscription:
    """
    A live request from the host for ongoing bar updates.

    `channel` is the derived stream channel (streaming mode only).
    `active` is cleared when the subscription is removed so that late
    deliveries to the removed key are dropped.
    """

    key: str
    instrument: InstrumentRef
    resolution: ChartResolution
    on_bar: BarCallback
    channel: Optional[StreamChannel] = None
    active: bool = True


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """Aggregate event parsed from the stream, addressed to a channel."""

    channel: StreamChannel
    bar: Bar
    recv_ts: UnixMillis


@dataclass
class DispatcherStats:
    """Statistics for bar dispatching."""

    ticks: int = 0
    fetches: int = 0
    fetch_errors: int = 0
    bars_delivered: int = 0
    callback_errors: int = 0
    events_received: int = 0
    events_unmatched: int = 0
