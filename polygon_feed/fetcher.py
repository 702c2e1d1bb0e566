"""
Historical aggregates -> Bars.

One range query per call, no retries, no caching. The provider returns records
sorted ascending by time and that order is preserved.
"""

from __future__ import annotations

import logging
from typing import Union

from polygon_feed.config import AGGREGATES_PATH
from polygon_feed.errors import FetchError, MalformedResponseError
from polygon_feed.ports.transport import HttpTransport
from polygon_feed.resolution import map_resolution
from polygon_feed.schemas import AggregatesResponse, parse_response
from polygon_feed.types import Bar, InstrumentRef

logger = logging.getLogger(__name__)

Seconds = Union[int, float]

MS_PER_SECOND = 1000


def to_millis(seconds: Seconds) -> int:
    """Epoch seconds -> epoch milliseconds (factor 1000, exact for integral seconds)."""
    return int(round(seconds * MS_PER_SECOND))


class BarFetcher:
    """Builds and issues the aggregates range query for an instrument."""

    def __init__(self, transport: HttpTransport, name: str = "bar_fetcher") -> None:
        self._transport = transport
        self._name = name

    async def fetch(
        self,
        instrument: InstrumentRef,
        resolution: str,
        from_s: Seconds,
        to_s: Seconds,
    ) -> list[Bar]:
        """
        Fetch bars for [from_s, to_s] (epoch seconds).

        An empty list is a valid outcome.

        Raises:
            UnsupportedResolutionError: before any request is issued
            FetchError: on transport failure, with the cause chained
            MalformedResponseError: if the response does not match AggregatesResponse
        """
        spec = map_resolution(resolution)
        path = AGGREGATES_PATH.format(
            ticker=instrument.ticker,
            multiplier=spec.multiplier,
            time_unit=spec.time_unit.value,
            from_ms=to_millis(from_s),
            to_ms=to_millis(to_s),
        )

        try:
            payload = await self._transport.get_json(path)
        except (FetchError, MalformedResponseError):
            raise
        except Exception as e:
            raise FetchError(
                f"Aggregates request failed: {e}",
                url=path,
                component="BarFetcher",
            ) from e

        response = parse_response(AggregatesResponse, payload, component="BarFetcher")
        bars = [record.to_bar() for record in response.results or []]

        logger.debug(
            f"[{self._name}] {instrument.ticker} {spec.multiplier}/{spec.time_unit.value}: "
            f"{len(bars)} bars"
        )
        return bars
