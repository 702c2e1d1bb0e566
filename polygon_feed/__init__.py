"""
Polygon Datafeed Adapter.

This package normalizes Polygon's historical aggregates API and its live
aggregate stream into the bar update protocol of a charting host.

Components:
- PolygonAdapter: Host-facing facade (ready/search/resolve/getBars/subscribe)
- UpdateDispatcher: Delivers new bars through a Polling or Streaming strategy
- SubscriptionRegistry: Active chart subscriptions in insertion order
- BarFetcher: Aggregates range query -> Bars
- map_resolution / SymbolTranslator: Resolution and channel naming rules
- PolygonWebSocketClient / AiohttpTransport: Network collaborators

Usage:
    from polygon_feed import AdapterConfig, PolygonAdapter

    adapter = PolygonAdapter(AdapterConfig(api_key="..."))
    await adapter.on_ready(on_configuration)
    await adapter.subscribe_bars(instrument, "1D", on_bar, "chart-1")
"""

from polygon_feed.adapter import PolygonAdapter
from polygon_feed.config import (
    AdapterConfig,
    ConnectionConfig,
    HttpConfig,
    PollingConfig,
    SearchConfig,
    StreamSymbolConfig,
    SymbolDefaults,
)
from polygon_feed.dispatcher import (
    PollingStrategy,
    StreamingStrategy,
    UpdateDispatcher,
    UpdateStrategy,
)
from polygon_feed.errors import (
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    FeedAdapterError,
    FetchError,
    MalformedResponseError,
    MessageParseError,
    SymbolTranslationError,
    UnsupportedResolutionError,
)
from polygon_feed.fetcher import BarFetcher
from polygon_feed.registry import SubscriptionRegistry
from polygon_feed.resolution import map_resolution
from polygon_feed.symbols import SymbolTranslator
from polygon_feed.types import (
    AggregationSpec,
    Bar,
    DispatcherState,
    HistoryMetadata,
    InstrumentRef,
    SearchResult,
    Subscription,
    TimeUnit,
)

__all__ = [
    # Main entry point
    "PolygonAdapter",
    "AdapterConfig",
    # Configs
    "ConnectionConfig",
    "HttpConfig",
    "PollingConfig",
    "SearchConfig",
    "StreamSymbolConfig",
    "SymbolDefaults",
    # Core
    "UpdateDispatcher",
    "UpdateStrategy",
    "PollingStrategy",
    "StreamingStrategy",
    "SubscriptionRegistry",
    "BarFetcher",
    "SymbolTranslator",
    "map_resolution",
    # Types
    "AggregationSpec",
    "Bar",
    "DispatcherState",
    "HistoryMetadata",
    "InstrumentRef",
    "SearchResult",
    "Subscription",
    "TimeUnit",
    # Errors
    "FeedAdapterError",
    "ConfigurationError",
    "UnsupportedResolutionError",
    "SymbolTranslationError",
    "FetchError",
    "MalformedResponseError",
    "ConnectionError",
    "AuthenticationError",
    "MessageParseError",
]
