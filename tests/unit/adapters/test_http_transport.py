"""
Tests for AiohttpTransport against a local aiohttp server.
"""

import pytest
from aiohttp import test_utils, web

from polygon_feed.adapters.http import AiohttpTransport
from polygon_feed.config import HttpConfig
from polygon_feed.errors import FetchError, MalformedResponseError


def _build_app(seen: list[dict[str, str]]) -> web.Application:
    async def tickers(request: web.Request) -> web.Response:
        seen.append(dict(request.query))
        return web.json_response({"status": "OK", "results": [{"ticker": "X:BTCUSD"}]})

    async def missing(request: web.Request) -> web.Response:
        return web.json_response({"status": "NOT_FOUND"}, status=404)

    async def garbage(request: web.Request) -> web.Response:
        return web.Response(text="<html>bad gateway</html>", content_type="text/html")

    app = web.Application()
    app.router.add_get("/v3/reference/tickers", tickers)
    app.router.add_get("/v3/reference/tickers/X:NOPE", missing)
    app.router.add_get("/garbage", garbage)
    return app


class TestAiohttpTransport:
    """Tests for AiohttpTransport."""

    @pytest.mark.asyncio
    async def test_get_json_adds_api_key(self) -> None:
        seen: list[dict[str, str]] = []
        server = test_utils.TestServer(_build_app(seen))
        await server.start_server()
        base_url = str(server.make_url("")).rstrip("/")
        transport = AiohttpTransport(api_key="secret", config=HttpConfig(base_url=base_url))
        try:
            payload = await transport.get_json(
                "/v3/reference/tickers", {"search": "BTC", "exchange": None}
            )
        finally:
            await transport.close()
            await server.close()

        assert payload["results"][0]["ticker"] == "X:BTCUSD"
        assert seen == [{"search": "BTC", "apiKey": "secret"}]

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        server = test_utils.TestServer(_build_app([]))
        await server.start_server()
        base_url = str(server.make_url("")).rstrip("/")
        transport = AiohttpTransport(api_key="secret", config=HttpConfig(base_url=base_url))
        try:
            with pytest.raises(FetchError) as exc_info:
                await transport.get_json("/v3/reference/tickers/X:NOPE")
        finally:
            await transport.close()
            await server.close()

        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        server = test_utils.TestServer(_build_app([]))
        await server.start_server()
        base_url = str(server.make_url("")).rstrip("/")
        transport = AiohttpTransport(api_key="secret", config=HttpConfig(base_url=base_url))
        try:
            with pytest.raises(MalformedResponseError):
                await transport.get_json("/garbage")
        finally:
            await transport.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_connection_refused(self) -> None:
        server = test_utils.TestServer(_build_app([]))
        await server.start_server()
        base_url = str(server.make_url("")).rstrip("/")
        await server.close()

        transport = AiohttpTransport(api_key="secret", config=HttpConfig(base_url=base_url))
        try:
            with pytest.raises(FetchError) as exc_info:
                await transport.get_json("/v3/reference/tickers")
        finally:
            await transport.close()

        assert exc_info.value.__cause__ is not None

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        transport = AiohttpTransport(api_key="secret")

        await transport.close()
        await transport.close()
