"""
aiohttp-backed REST transport for the Polygon API.

Owns one lazily created ClientSession. Every request carries the API key as
the `apiKey` query parameter. Bodies are decoded with orjson.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import aiohttp
import orjson

from polygon_feed.config import HttpConfig
from polygon_feed.errors import FetchError, MalformedResponseError

logger = logging.getLogger(__name__)


class AiohttpTransport:
    """
    HttpTransport implementation on top of aiohttp.

    Usage:
        transport = AiohttpTransport(api_key="...", config=HttpConfig())
        payload = await transport.get_json("/v3/reference/tickers", {"search": "BTC"})
        await transport.close()
    """

    def __init__(
        self,
        api_key: str,
        config: Optional[HttpConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        name: str = "polygon_http",
    ) -> None:
        self._api_key = api_key
        self._config = config or HttpConfig()
        self._session = session
        self._owns_session = session is None
        self._name = name

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def get_json(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """
        GET base_url + path and decode the JSON body.

        Raises:
            FetchError: on connection errors, timeouts and non-2xx statuses
            MalformedResponseError: if the body is not valid JSON
        """
        url = f"{self._config.base_url}{path}"
        query = {k: v for k, v in (params or {}).items() if v is not None}
        query["apiKey"] = self._api_key

        session = self._get_session()
        logger.debug(f"[{self._name}] GET {url}")
        try:
            async with session.get(url, params=query) as resp:
                body = await resp.read()
                if resp.status >= 400:
                    raise FetchError(
                        f"HTTP {resp.status} from provider",
                        url=url,
                        status=resp.status,
                        component="AiohttpTransport",
                    )
        except FetchError:
            raise
        except (aiohttp.ClientError, TimeoutError) as e:
            raise FetchError(
                f"Request failed: {e}",
                url=url,
                component="AiohttpTransport",
            ) from e

        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise MalformedResponseError(
                "Response body is not valid JSON",
                expected="json",
                component="AiohttpTransport",
                details={"url": url},
            ) from e

    async def close(self) -> None:
        """Close the session if this transport created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
