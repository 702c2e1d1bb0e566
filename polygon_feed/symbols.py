"""
Instrument -> stream channel naming.

The REST API and the chart know crypto pairs as "X:BTCUSD", the aggregate
stream wants "XA.BTC-USD". The transform is parameterized by
StreamSymbolConfig so that other instrument classes only need different
parameters, not different code.
"""

from __future__ import annotations

from typing import Optional

from polygon_feed.config import StreamSymbolConfig
from polygon_feed.errors import SymbolTranslationError
from polygon_feed.types import InstrumentRef, StreamChannel


class SymbolTranslator:
    """Deterministic ticker -> stream symbol transform."""

    def __init__(self, config: Optional[StreamSymbolConfig] = None) -> None:
        self._config = config or StreamSymbolConfig()

    @property
    def config(self) -> StreamSymbolConfig:
        return self._config

    def to_stream_symbol(self, instrument: InstrumentRef) -> str:
        """
        Strip the venue prefix and quote suffix from the ticker, then append
        the stream quote suffix: "X:BTCUSD" -> "BTC-USD".

        Raises:
            SymbolTranslationError: if nothing is left between prefix and suffix
        """
        ticker = instrument.ticker
        prefix_len = self._config.prefix_length
        suffix_len = self._config.suffix_length

        if len(ticker) <= prefix_len + suffix_len:
            raise SymbolTranslationError(
                f"Ticker too short for stream symbol transform "
                f"(prefix={prefix_len}, suffix={suffix_len})",
                ticker=ticker,
                component="SymbolTranslator",
            )

        base = ticker[prefix_len : len(ticker) - suffix_len]
        return f"{base}{self._config.quote_suffix}"

    def to_channel(self, instrument: InstrumentRef) -> StreamChannel:
        """Channel name for the aggregate stream, e.g. "XA.BTC-USD"."""
        return f"{self._config.channel_prefix}.{self.to_stream_symbol(instrument)}"
