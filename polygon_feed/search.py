"""
Symbol search and symbol resolution.

Both are single request/response lookups against the reference tickers
endpoints. Search is rate limited by a TrailingDebouncer: only the last call
within the debounce window is executed, superseded calls are cancelled and
their callbacks never fire.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from polygon_feed.config import (
    TICKER_DETAILS_PATH,
    TICKER_SEARCH_PATH,
    SearchConfig,
    SymbolDefaults,
)
from polygon_feed.ports.transport import HttpTransport
from polygon_feed.resolution import MAPPED_RESOLUTIONS
from polygon_feed.schemas import TickerDetailsResponse, TickerSearchResponse, parse_response
from polygon_feed.types import InstrumentRef, SearchResult

logger = logging.getLogger(__name__)


class TrailingDebouncer:
    """
    Trailing-edge coalescing of async calls.

    Every submit() cancels the previously submitted call (whether it is still
    waiting out the delay or already running) and schedules the new one after
    `delay_s`.
    """

    def __init__(self, delay_s: float, name: str = "debouncer") -> None:
        self._delay_s = delay_s
        self._name = name
        self._pending: Optional[asyncio.Task[None]] = None
        self.superseded = 0

    @property
    def pending(self) -> Optional[asyncio.Task[None]]:
        return self._pending

    def submit(self, call: Callable[[], Awaitable[None]]) -> asyncio.Task[None]:
        """Schedule `call` (a zero-argument coroutine function) after the delay."""
        self.cancel()
        self._pending = asyncio.create_task(self._run(call), name=f"{self._name}_pending")
        return self._pending

    async def _run(self, call: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(self._delay_s)
        await call()

    def cancel(self) -> None:
        pending = self._pending
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            pending.cancel()
            self.superseded += 1
            logger.debug(f"[{self._name}] Superseded pending call")
        self._pending = None

    async def aclose(self) -> None:
        task = self._pending
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass


class SymbolSearch:
    """Text search over the reference tickers endpoint."""

    def __init__(self, transport: HttpTransport, config: Optional[SearchConfig] = None) -> None:
        self._transport = transport
        self._config = config or SearchConfig()

    async def search(
        self,
        query: str,
        exchange: str = "",
        symbol_type: str = "",
    ) -> list[SearchResult]:
        """
        Search tickers by free text.

        `exchange` and `symbol_type` come from the host's search box and use
        its vocabulary, not the provider's market or MIC codes, so they are
        not sent as filters.

        Raises:
            FetchError: on transport failure
            MalformedResponseError: if the response has an unexpected shape
        """
        if exchange or symbol_type:
            logger.debug(f"Ignoring host filters exchange={exchange!r} type={symbol_type!r}")
        params = {"search": query, "limit": self._config.limit}
        payload = await self._transport.get_json(TICKER_SEARCH_PATH, params)
        response = parse_response(TickerSearchResponse, payload, component="SymbolSearch")
        return [item.to_search_result() for item in response.results]


class SymbolResolver:
    """Resolves a ticker into an InstrumentRef with static host metadata."""

    def __init__(
        self,
        transport: HttpTransport,
        defaults: Optional[SymbolDefaults] = None,
        supported_resolutions: tuple[str, ...] = MAPPED_RESOLUTIONS,
    ) -> None:
        self._transport = transport
        self._defaults = defaults or SymbolDefaults()
        self._supported_resolutions = tuple(supported_resolutions)

    async def resolve(self, symbol: str) -> InstrumentRef:
        """
        Raises:
            FetchError: on transport failure (including unknown tickers, HTTP 404)
            MalformedResponseError: if the response carries no ticker details
        """
        payload = await self._transport.get_json(TICKER_DETAILS_PATH.format(ticker=symbol))
        details = parse_response(TickerDetailsResponse, payload, component="SymbolResolver").results

        d = self._defaults
        return InstrumentRef(
            ticker=details.ticker,
            name=details.ticker,
            description=details.name,
            type=d.type,
            session=d.session,
            timezone=d.timezone,
            exchange=details.primary_exchange,
            minmov=d.minmov,
            pricescale=d.pricescale,
            has_intraday=d.has_intraday,
            intraday_multipliers=d.intraday_multipliers,
            volume_precision=d.volume_precision,
            data_status=d.data_status,
            supported_resolutions=self._supported_resolutions,
        )
