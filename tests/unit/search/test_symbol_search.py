"""
Unit tests for symbol search, symbol resolution and the search debouncer.
"""

import asyncio

import pytest

from polygon_feed.config import SearchConfig, SymbolDefaults
from polygon_feed.errors import FetchError, MalformedResponseError
from polygon_feed.resolution import MAPPED_RESOLUTIONS
from polygon_feed.search import SymbolResolver, SymbolSearch, TrailingDebouncer
from polygon_feed.types import SearchResult


class TestTrailingDebouncer:
    """Tests for TrailingDebouncer."""

    @pytest.mark.asyncio
    async def test_only_last_call_runs(self) -> None:
        debouncer = TrailingDebouncer(delay_s=0.01)
        calls: list[str] = []

        def make(query: str):
            async def call() -> None:
                calls.append(query)

            return call

        first = debouncer.submit(make("B"))
        second = debouncer.submit(make("BT"))
        last = debouncer.submit(make("BTC"))
        await last

        assert calls == ["BTC"]
        assert first.cancelled()
        assert second.cancelled()
        assert debouncer.superseded == 2

    @pytest.mark.asyncio
    async def test_spaced_calls_all_run(self) -> None:
        debouncer = TrailingDebouncer(delay_s=0)
        calls: list[int] = []

        async def call() -> None:
            calls.append(1)

        await debouncer.submit(call)
        await debouncer.submit(call)

        assert calls == [1, 1]
        assert debouncer.superseded == 0

    @pytest.mark.asyncio
    async def test_aclose_cancels_pending(self) -> None:
        debouncer = TrailingDebouncer(delay_s=10)
        calls: list[int] = []

        async def call() -> None:
            calls.append(1)

        task = debouncer.submit(call)
        await debouncer.aclose()

        assert task.cancelled()
        assert debouncer.pending is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_resubmit_from_running_call(self) -> None:
        """A running call may submit the next one without cancelling itself."""
        debouncer = TrailingDebouncer(delay_s=0)
        calls: list[str] = []

        async def second() -> None:
            calls.append("second")

        async def first() -> None:
            calls.append("first")
            debouncer.submit(second)
            calls.append("first-done")

        task = debouncer.submit(first)
        await task
        pending = debouncer.pending
        assert pending is not None
        await pending

        assert calls == ["first", "first-done", "second"]


class TestSymbolSearch:
    """Tests for SymbolSearch."""

    @pytest.mark.asyncio
    async def test_search_maps_results(self, transport, ticker_search_payload) -> None:
        transport.respond("/v3/reference/tickers", ticker_search_payload)
        search = SymbolSearch(transport, SearchConfig(limit=20))

        results = await search.search("BTC", exchange="", symbol_type="crypto")

        path, params = transport.calls[0]
        assert path == "/v3/reference/tickers"
        assert params["search"] == "BTC"
        assert params["limit"] == 20
        assert "market" not in params
        assert "exchange" not in params

        assert results[0] == SearchResult(
            symbol="X:BTCUSD",
            ticker="X:BTCUSD",
            full_name="Bitcoin - United States dollar",
            description="Bitcoin - United States dollar",
            exchange="",
            type="crypto",
            locale="global",
        )
        assert [r.ticker for r in results] == ["X:BTCUSD", "X:BTCEUR"]

    @pytest.mark.asyncio
    async def test_host_type_and_exchange_not_sent_as_filters(
        self, transport, ticker_search_payload
    ) -> None:
        """Host types such as "bitcoin" are not provider markets."""
        transport.respond("/v3/reference/tickers", ticker_search_payload)
        search = SymbolSearch(transport, SearchConfig())

        results = await search.search("BTC", exchange="BINANCE", symbol_type="bitcoin")

        assert transport.calls == [("/v3/reference/tickers", {"search": "BTC", "limit": None})]
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_search_without_results(self, transport) -> None:
        transport.respond("/v3/reference/tickers", {"status": "OK", "count": 0})

        assert await SymbolSearch(transport).search("ZZZ") == []

    @pytest.mark.asyncio
    async def test_search_transport_error(self, transport) -> None:
        transport.fail("/v3/reference/tickers", FetchError("HTTP 429 from provider", status=429))

        with pytest.raises(FetchError):
            await SymbolSearch(transport).search("BTC")

    @pytest.mark.asyncio
    async def test_search_result_to_dict(self, transport, ticker_search_payload) -> None:
        transport.respond("/v3/reference/tickers", ticker_search_payload)

        results = await SymbolSearch(transport).search("BTC")

        assert results[1].to_dict()["full_name"] == "Bitcoin - Euro"


class TestSymbolResolver:
    """Tests for SymbolResolver."""

    @pytest.mark.asyncio
    async def test_resolve_builds_instrument(self, transport, ticker_details_payload) -> None:
        transport.respond("/v3/reference/tickers/X:BTCUSD", ticker_details_payload)
        resolver = SymbolResolver(transport)

        instrument = await resolver.resolve("X:BTCUSD")

        assert transport.calls[0][0] == "/v3/reference/tickers/X:BTCUSD"
        info = instrument.to_symbol_info()
        assert info["name"] == "X:BTCUSD"
        assert info["ticker"] == "X:BTCUSD"
        assert info["description"] == "Bitcoin - United States dollar"
        assert info["type"] == "crypto"
        assert info["session"] == "24x7"
        assert info["timezone"] == "America/New_York"
        assert info["minmov"] == 1
        assert info["pricescale"] == 100
        assert info["has_intraday"] is True
        assert info["intraday_multipliers"] == ["1", "60"]
        assert info["volume_precision"] == 8
        assert info["data_status"] == "streaming"
        assert info["supported_resolutions"] == list(MAPPED_RESOLUTIONS)

    @pytest.mark.asyncio
    async def test_resolve_custom_defaults(self, transport, ticker_details_payload) -> None:
        transport.respond("/v3/reference/tickers/X:BTCUSD", ticker_details_payload)
        resolver = SymbolResolver(
            transport,
            defaults=SymbolDefaults(pricescale=10000, timezone="Etc/UTC"),
            supported_resolutions=("1", "1D"),
        )

        instrument = await resolver.resolve("X:BTCUSD")

        assert instrument.pricescale == 10000
        assert instrument.timezone == "Etc/UTC"
        assert instrument.supported_resolutions == ("1", "1D")

    @pytest.mark.asyncio
    async def test_unknown_ticker(self, transport) -> None:
        transport.fail(
            "/v3/reference/tickers/X:NOPE",
            FetchError("HTTP 404 from provider", status=404),
        )

        with pytest.raises(FetchError) as exc_info:
            await SymbolResolver(transport).resolve("X:NOPE")
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_details_without_results(self, transport) -> None:
        transport.respond("/v3/reference/tickers/X:BTCUSD", {"status": "OK"})

        with pytest.raises(MalformedResponseError):
            await SymbolResolver(transport).resolve("X:BTCUSD")


@pytest.mark.asyncio
async def test_debouncer_task_named_after_instance() -> None:
    debouncer = TrailingDebouncer(delay_s=0, name="chart_search")

    async def call() -> None:
        await asyncio.sleep(0)

    task = debouncer.submit(call)
    assert task.get_name() == "chart_search_pending"
    await task
