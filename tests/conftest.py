"""
Shared fakes for the network collaborators.
"""

import asyncio
import copy
from typing import Any, Mapping, Optional

import pytest

from polygon_feed.errors import ConnectionError, FetchError
from polygon_feed.ports.streaming import EventHandler


class FakeTransport:
    """HttpTransport double: canned payloads, failures and gates per path prefix."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False
        self._responses: dict[str, Any] = {}
        self._errors: dict[str, Exception] = {}
        self._gates: dict[str, asyncio.Event] = {}

    def respond(self, prefix: str, payload: Any) -> None:
        self._responses[prefix] = payload

    def fail(self, prefix: str, error: Exception) -> None:
        self._errors[prefix] = error

    def block(self, prefix: str) -> asyncio.Event:
        """Requests under `prefix` wait until the returned event is set."""
        gate = asyncio.Event()
        self._gates[prefix] = gate
        return gate

    @staticmethod
    def _match(path: str, table: Mapping[str, Any]) -> Optional[str]:
        matches = [prefix for prefix in table if path.startswith(prefix)]
        return max(matches, key=len) if matches else None

    async def get_json(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        self.calls.append((path, dict(params or {})))

        gate_key = self._match(path, self._gates)
        if gate_key is not None:
            await self._gates[gate_key].wait()

        error_key = self._match(path, self._errors)
        if error_key is not None:
            raise self._errors[error_key]

        response_key = self._match(path, self._responses)
        if response_key is not None:
            return copy.deepcopy(self._responses[response_key])

        raise FetchError("No fake response configured", url=path, status=404)

    async def close(self) -> None:
        self.closed = True


class FakeStreamingClient:
    """StreamingClient double recording channel requests."""

    def __init__(self) -> None:
        self.connected = False
        self.closed = False
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []
        self.handlers: dict[str, list[EventHandler]] = {}
        # connect() raises this many times before it succeeds
        self.connect_failures = 0
        self.connect_calls = 0

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise ConnectionError("connect refused", component="FakeStreamingClient")
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    async def subscribe(self, channel: str) -> None:
        self.subscribed.append(channel)

    async def unsubscribe(self, channel: str) -> None:
        self.unsubscribed.append(channel)

    def on(self, event_prefix: str, handler: EventHandler) -> None:
        self.handlers.setdefault(event_prefix, []).append(handler)

    async def emit(self, event: dict[str, Any], recv_ts: int = 0) -> None:
        for handler in self.handlers.get(event["ev"], []):
            await handler(event, recv_ts)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def streaming_client() -> FakeStreamingClient:
    return FakeStreamingClient()


@pytest.fixture
def aggs_payload() -> dict[str, Any]:
    """Three daily aggregates as returned by /v2/aggs."""
    return {
        "ticker": "X:BTCUSD",
        "queryCount": 3,
        "resultsCount": 3,
        "adjusted": True,
        "status": "OK",
        "request_id": "6a7e466379af0a71039d60cc78e72282",
        "results": [
            {"v": 120.5, "vw": 16530.1, "o": 16500.0, "c": 16550.0, "h": 16600.0, "l": 16450.0, "t": 1672531200000, "n": 1500},
            {"v": 98.25, "vw": 16610.4, "o": 16550.0, "c": 16640.0, "h": 16700.0, "l": 16520.0, "t": 1672617600000, "n": 1320},
            {"v": 143.0, "vw": 16690.9, "o": 16640.0, "c": 16720.5, "h": 16800.0, "l": 16610.0, "t": 1672704000000, "n": 1710},
        ],
    }


@pytest.fixture
def empty_aggs_payload() -> dict[str, Any]:
    """Polygon omits `results` when the range is empty."""
    return {
        "ticker": "X:BTCUSD",
        "queryCount": 0,
        "resultsCount": 0,
        "adjusted": True,
        "status": "OK",
        "request_id": "b1c2d3",
    }


@pytest.fixture
def ticker_details_payload() -> dict[str, Any]:
    return {
        "request_id": "31d59dda-80e5-4721-8496-d0d32a654afe",
        "status": "OK",
        "results": {
            "ticker": "X:BTCUSD",
            "name": "Bitcoin - United States dollar",
            "market": "crypto",
            "locale": "global",
            "active": True,
            "currency_name": "United States dollar",
            "base_currency_symbol": "BTC",
        },
    }


@pytest.fixture
def ticker_search_payload() -> dict[str, Any]:
    return {
        "status": "OK",
        "count": 2,
        "results": [
            {"ticker": "X:BTCUSD", "name": "Bitcoin - United States dollar", "market": "crypto", "locale": "global"},
            {"ticker": "X:BTCEUR", "name": "Bitcoin - Euro", "market": "crypto", "locale": "global"},
        ],
    }
