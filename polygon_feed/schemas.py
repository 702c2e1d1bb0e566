"""
Response schemas for the Polygon REST API.

Only the fields the adapter reads are declared; everything else is ignored.
Validation failures are translated into MalformedResponseError by parse_response().
"""

from __future__ import annotations

from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from polygon_feed.errors import MalformedResponseError
from polygon_feed.types import Bar, SearchResult

M = TypeVar("M", bound=BaseModel)


class AggregateRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    t: int = Field(description="bucket start, epoch ms")
    o: float
    h: float
    l: float  # noqa: E741
    c: float
    v: float

    def to_bar(self) -> Bar:
        return Bar(time=self.t, open=self.o, high=self.h, low=self.l, close=self.c, volume=self.v)


class AggregatesResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")
    ticker: Optional[str] = None
    status: Optional[str] = None
    resultsCount: Optional[int] = None
    # Absent (or null) when the range holds no bars
    results: Optional[list[AggregateRecord]] = None


class TickerSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")
    ticker: str
    name: str = ""
    market: str = ""
    locale: str = ""
    primary_exchange: str = ""

    def to_search_result(self) -> SearchResult:
        return SearchResult(
            symbol=self.ticker,
            ticker=self.ticker,
            full_name=self.name,
            description=self.name,
            exchange=self.primary_exchange,
            type=self.market,
            locale=self.locale,
        )


class TickerSearchResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")
    status: Optional[str] = None
    results: list[TickerSummary] = Field(default_factory=list)


class TickerDetailsResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")
    status: Optional[str] = None
    results: TickerSummary


def parse_response(model: type[M], payload: Any, *, component: str) -> M:
    """Validate a decoded JSON payload, raising MalformedResponseError on mismatch."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponseError(
            f"Unexpected response shape: {e.error_count()} validation error(s)",
            expected=model.__name__,
            component=component,
            details={"errors": [err["loc"] for err in e.errors()]},
        ) from e
