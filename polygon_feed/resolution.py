"""
Chart resolution -> aggregation parameters.

The charting host asks for bars in resolution tokens ("1", "60", "1D", ...),
the aggregates endpoint wants a multiplier and a timespan. Rules are applied
in order, first match wins:

1. "D" / "1D"                  -> (1, day)
2. minute set {1,3,5,15,30,45} -> (value, minute)
3. hour set {60,120,180,240}   -> (value / 60, hour)
4. week/month/year tokens      -> UnsupportedResolutionError (no mapping)
5. anything else               -> UnsupportedResolutionError
"""

from __future__ import annotations

from typing import Final

from polygon_feed.errors import UnsupportedResolutionError
from polygon_feed.types import AggregationSpec, TimeUnit

DAILY_RESOLUTIONS: Final[frozenset[str]] = frozenset({"D", "1D"})
MINUTE_RESOLUTIONS: Final[tuple[str, ...]] = ("1", "3", "5", "15", "30", "45")
HOUR_RESOLUTIONS: Final[tuple[str, ...]] = ("60", "120", "180", "240")

# Known to the host, but the aggregates query has no mapping for them yet
UNMAPPED_RESOLUTIONS: Final[tuple[str, ...]] = ("1W", "1M", "12M")

# Everything map_resolution() accepts, in the order advertised to the host
MAPPED_RESOLUTIONS: Final[tuple[str, ...]] = MINUTE_RESOLUTIONS + HOUR_RESOLUTIONS + ("1D",)


def map_resolution(resolution: str) -> AggregationSpec:
    """
    Translate a chart resolution into an AggregationSpec.

    Raises UnsupportedResolutionError for unknown tokens and for the
    week/month/year tokens.
    """
    if resolution in DAILY_RESOLUTIONS:
        return AggregationSpec(multiplier=1, time_unit=TimeUnit.DAY)

    if resolution in MINUTE_RESOLUTIONS:
        return AggregationSpec(multiplier=int(resolution), time_unit=TimeUnit.MINUTE)

    if resolution in HOUR_RESOLUTIONS:
        return AggregationSpec(multiplier=int(resolution) // 60, time_unit=TimeUnit.HOUR)

    if resolution in UNMAPPED_RESOLUTIONS:
        raise UnsupportedResolutionError(
            resolution,
            reason="resolution has no aggregation mapping",
            component="ResolutionMapper",
        )

    raise UnsupportedResolutionError(resolution, component="ResolutionMapper")


def is_supported(resolution: str) -> bool:
    """True if map_resolution() would succeed for this token."""
    return resolution in DAILY_RESOLUTIONS or resolution in MAPPED_RESOLUTIONS
