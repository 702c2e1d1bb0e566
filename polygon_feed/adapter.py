"""
Charting host facade.

PolygonAdapter composes resolution mapping, bar fetching, symbol lookup and
the update dispatcher behind the datafeed contract a charting host expects:

    on_ready / search_symbols / resolve_symbol / get_bars /
    subscribe_bars / unsubscribe_bars

Results and errors are reported through the host's callbacks. Callbacks may be
plain functions or coroutine functions.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Union

from polygon_feed.adapters.http import AiohttpTransport
from polygon_feed.adapters.polygon_ws import PolygonWebSocketClient
from polygon_feed.clock import Clock
from polygon_feed.config import AdapterConfig
from polygon_feed.dispatcher import (
    PollingStrategy,
    StreamingStrategy,
    UpdateDispatcher,
    UpdateStrategy,
)
from polygon_feed.errors import FeedAdapterError
from polygon_feed.fetcher import BarFetcher
from polygon_feed.ports.streaming import StreamingClient
from polygon_feed.ports.transport import HttpTransport
from polygon_feed.registry import SubscriptionRegistry
from polygon_feed.search import SymbolResolver, SymbolSearch, TrailingDebouncer
from polygon_feed.symbols import SymbolTranslator
from polygon_feed.types import (
    BarCallback,
    DispatcherState,
    HistoryMetadata,
    InstrumentRef,
    Subscription,
)

logger = logging.getLogger(__name__)

Seconds = Union[int, float]


async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class PolygonAdapter:
    """
    Datafeed adapter for the Polygon aggregates API.

    The update strategy is decided once, at construction, from
    `config.realtime_enabled` (streaming) or injected explicitly.

    Usage:
        adapter = PolygonAdapter(AdapterConfig(api_key="..."))
        await adapter.on_ready(lambda configuration: ...)
        await adapter.resolve_symbol("X:BTCUSD", on_resolved, on_error)
        await adapter.subscribe_bars(instrument, "1D", on_bar, "chart-1")
        ...
        await adapter.stop()
    """

    def __init__(
        self,
        config: AdapterConfig,
        *,
        transport: Optional[HttpTransport] = None,
        streaming_client: Optional[StreamingClient] = None,
        strategy: Optional[UpdateStrategy] = None,
        clock: Optional[Clock] = None,
        name: str = "polygon_adapter",
    ) -> None:
        self._config = config
        self._name = name

        self._transport: HttpTransport = transport or AiohttpTransport(
            api_key=config.api_key, config=config.http
        )
        self._fetcher = BarFetcher(self._transport)
        self._translator = SymbolTranslator(config.stream_symbols)
        self._symbol_search = SymbolSearch(self._transport, config.search)
        self._resolver = SymbolResolver(
            self._transport,
            defaults=config.symbol_defaults,
            supported_resolutions=config.supported_resolutions,
        )
        self._search_debouncer = TrailingDebouncer(config.search.debounce_s, name=f"{name}_search")

        self._registry = SubscriptionRegistry()
        if strategy is None:
            strategy = self._build_strategy(streaming_client, clock)
        self._dispatcher = UpdateDispatcher(self._registry, strategy, name=f"{name}_dispatcher")

    def _build_strategy(
        self,
        streaming_client: Optional[StreamingClient],
        clock: Optional[Clock],
    ) -> UpdateStrategy:
        if self._config.realtime_enabled:
            client = streaming_client or PolygonWebSocketClient(
                api_key=self._config.api_key,
                config=self._config.connection,
            )
            return StreamingStrategy(client, self._translator)
        return PollingStrategy(self._fetcher, config=self._config.polling, clock=clock)

    @property
    def config(self) -> AdapterConfig:
        return self._config

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def dispatcher(self) -> UpdateDispatcher:
        return self._dispatcher

    @property
    def state(self) -> DispatcherState:
        return self._dispatcher.state

    def configuration(self) -> dict[str, Any]:
        """Datafeed configuration reported to the host in on_ready."""
        return {"supported_resolutions": list(self._config.supported_resolutions)}

    # --- Host contract ---

    async def on_ready(self, callback: Callable[[dict[str, Any]], Any]) -> None:
        """
        Start the update strategy, then call back with the datafeed configuration.

        The callback always runs after at least one pass of the event loop.
        """
        await self._dispatcher.start()
        await asyncio.sleep(0)
        await _invoke(callback, self.configuration())

    def search_symbols(
        self,
        user_input: str,
        exchange: str,
        symbol_type: str,
        on_result: Callable[[list[Any]], Any],
    ) -> asyncio.Task[None]:
        """
        Debounced symbol search (trailing edge).

        A newer call cancels a pending one; only the last call reports.
        Failures are logged and reported as an empty result list because the
        host search contract has no error callback.
        """

        async def run() -> None:
            try:
                results: list[Any] = await self._symbol_search.search(
                    user_input, exchange, symbol_type
                )
            except FeedAdapterError as e:
                logger.error(f"[{self._name}] Symbol search failed for {user_input!r}: {e}")
                results = []
            try:
                await _invoke(on_result, results)
            except Exception as e:
                logger.error(f"[{self._name}] Search callback error: {e}", exc_info=True)

        return self._search_debouncer.submit(run)

    async def resolve_symbol(
        self,
        symbol: str,
        on_resolved: Callable[[InstrumentRef], Any],
        on_error: Callable[[FeedAdapterError], Any],
    ) -> None:
        logger.debug(f"[{self._name}] Resolve symbol: {symbol}")
        try:
            instrument = await self._resolver.resolve(symbol)
        except FeedAdapterError as e:
            logger.warning(f"[{self._name}] Resolve failed for {symbol}: {e}")
            await _invoke(on_error, e)
            return
        await _invoke(on_resolved, instrument)

    async def get_bars(
        self,
        instrument: InstrumentRef,
        resolution: str,
        from_s: Seconds,
        to_s: Seconds,
        on_result: Callable[..., Any],
        on_error: Callable[[FeedAdapterError], Any],
    ) -> None:
        """
        Fetch history for [from_s, to_s] (epoch seconds).

        Calls on_result(bars, HistoryMetadata(no_data=...)) on success, with
        no_data true exactly when no bars were returned, or on_error(exc) on
        unsupported resolutions, transport failures and malformed responses.
        """
        try:
            bars = await self._fetcher.fetch(instrument, resolution, from_s, to_s)
        except FeedAdapterError as e:
            logger.warning(f"[{self._name}] get_bars failed for {instrument.ticker}: {e}")
            await _invoke(on_error, e)
            return
        await _invoke(on_result, bars, HistoryMetadata(no_data=len(bars) == 0))

    async def subscribe_bars(
        self,
        instrument: InstrumentRef,
        resolution: str,
        on_bar: BarCallback,
        key: str,
    ) -> bool:
        """
        Subscribe to bar updates.

        Only resolutions in `config.allowed_streaming_resolutions` are
        accepted; others are dropped without registering anything.
        Returns whether the subscription was accepted.

        Raises:
            SymbolTranslationError: in streaming mode, if no channel can be derived
        """
        if resolution not in self._config.allowed_streaming_resolutions:
            logger.debug(
                f"[{self._name}] Ignoring subscription {key} for {instrument.ticker}: "
                f"resolution {resolution} not in {sorted(self._config.allowed_streaming_resolutions)}"
            )
            return False

        subscription = Subscription(
            key=str(key),
            instrument=instrument,
            resolution=resolution,
            on_bar=on_bar,
        )
        await self._dispatcher.subscribe(subscription)
        return True

    async def unsubscribe_bars(self, key: str) -> None:
        await self._dispatcher.unsubscribe(str(key))

    async def stop(self) -> None:
        """Cancel pending searches, stop updates and release network resources."""
        await self._search_debouncer.aclose()
        await self._dispatcher.stop()
        await self._transport.close()
