"""
Configuration types for the Polygon datafeed adapter.

Provides immutable, validated configuration dataclasses for all adapter components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from polygon_feed.errors import ConfigurationError
from polygon_feed.ports.secrets_provider import SecretsProvider
from polygon_feed.resolution import MAPPED_RESOLUTIONS, is_supported

POLYGON_REST_URL = "https://api.polygon.io"
POLYGON_CRYPTO_WS_URL = "wss://socket.polygon.io/crypto"

# REST paths, formatted with str.format
AGGREGATES_PATH = "/v2/aggs/ticker/{ticker}/range/{multiplier}/{time_unit}/{from_ms}/{to_ms}"
TICKER_SEARCH_PATH = "/v3/reference/tickers"
TICKER_DETAILS_PATH = "/v3/reference/tickers/{ticker}"


@dataclass(frozen=True)
class HttpConfig:
    """Configuration for the REST transport."""

    base_url: str = POLYGON_REST_URL
    timeout_s: float = 30.0

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ConfigurationError("base_url must be non-empty", field="base_url")
        if self.timeout_s <= 0:
            raise ConfigurationError(
                "timeout_s must be positive",
                field="timeout_s",
                value=self.timeout_s,
            )


@dataclass(frozen=True)
class ConnectionConfig:
    """Configuration for the streaming WebSocket connection."""

    url: str = POLYGON_CRYPTO_WS_URL

    # Connection behavior
    connect_timeout_s: float = 30.0
    auth_timeout_s: float = 10.0
    heartbeat_s: float = 30.0
    max_reconnect_attempts: int = 10
    base_reconnect_delay_s: float = 1.0
    max_reconnect_delay_s: float = 60.0
    reconnect_jitter: float = 0.3  # ±30% jitter

    def __post_init__(self) -> None:
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s must be positive",
                field="connect_timeout_s",
                value=self.connect_timeout_s,
            )
        if self.auth_timeout_s <= 0:
            raise ConfigurationError(
                "auth_timeout_s must be positive",
                field="auth_timeout_s",
                value=self.auth_timeout_s,
            )
        if self.max_reconnect_attempts < 0:
            raise ConfigurationError(
                "max_reconnect_attempts must be non-negative",
                field="max_reconnect_attempts",
                value=self.max_reconnect_attempts,
            )
        if not (0 <= self.reconnect_jitter <= 1):
            raise ConfigurationError(
                "reconnect_jitter must be between 0 and 1",
                field="reconnect_jitter",
                value=self.reconnect_jitter,
            )


@dataclass(frozen=True)
class PollingConfig:
    """Configuration for the polling update strategy."""

    interval_s: float = 15.0
    window_s: int = 120  # trailing window fetched on every tick

    def __post_init__(self) -> None:
        if self.interval_s <= 0:
            raise ConfigurationError(
                "interval_s must be positive",
                field="interval_s",
                value=self.interval_s,
            )
        if self.window_s <= 0:
            raise ConfigurationError(
                "window_s must be positive",
                field="window_s",
                value=self.window_s,
            )


@dataclass(frozen=True)
class StreamSymbolConfig:
    """
    Parameters of the ticker -> stream symbol transform.

    Defaults turn crypto tickers like "X:BTCUSD" into "BTC-USD" and the
    channel "XA.BTC-USD".
    """

    prefix_length: int = 2
    suffix_length: int = 3
    quote_suffix: str = "-USD"
    channel_prefix: str = "XA"

    def __post_init__(self) -> None:
        if self.prefix_length < 0:
            raise ConfigurationError(
                "prefix_length must be non-negative",
                field="prefix_length",
                value=self.prefix_length,
            )
        if self.suffix_length < 0:
            raise ConfigurationError(
                "suffix_length must be non-negative",
                field="suffix_length",
                value=self.suffix_length,
            )
        if not self.channel_prefix:
            raise ConfigurationError("channel_prefix must be non-empty", field="channel_prefix")


@dataclass(frozen=True)
class SymbolDefaults:
    """Static metadata synthesized for every resolved instrument."""

    type: str = "crypto"
    session: str = "24x7"
    timezone: str = "America/New_York"
    minmov: int = 1
    pricescale: int = 100
    has_intraday: bool = True
    intraday_multipliers: tuple[str, ...] = ("1", "60")
    volume_precision: int = 8
    data_status: str = "streaming"

    def __post_init__(self) -> None:
        if self.pricescale <= 0:
            raise ConfigurationError(
                "pricescale must be positive",
                field="pricescale",
                value=self.pricescale,
            )


@dataclass(frozen=True)
class SearchConfig:
    """Configuration for symbol search."""

    debounce_s: float = 0.25
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.debounce_s < 0:
            raise ConfigurationError(
                "debounce_s must be non-negative",
                field="debounce_s",
                value=self.debounce_s,
            )


@dataclass(frozen=True)
class AdapterConfig:
    """
    Immutable top-level configuration for the adapter.

    Example:
        config = AdapterConfig(api_key="...", realtime_enabled=False)
    """

    api_key: str

    # Update strategy, fixed for the adapter lifetime
    realtime_enabled: bool = True

    # Only these resolutions are accepted by subscribe_bars
    allowed_streaming_resolutions: frozenset[str] = frozenset({"1D"})

    # Advertised to the host in on_ready and resolve_symbol
    supported_resolutions: tuple[str, ...] = MAPPED_RESOLUTIONS

    # Component configs
    http: HttpConfig = field(default_factory=HttpConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    stream_symbols: StreamSymbolConfig = field(default_factory=StreamSymbolConfig)
    symbol_defaults: SymbolDefaults = field(default_factory=SymbolDefaults)
    search: SearchConfig = field(default_factory=SearchConfig)

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError("api_key must be non-empty", field="api_key")
        if not self.supported_resolutions:
            raise ConfigurationError(
                "At least one supported resolution must be configured",
                field="supported_resolutions",
            )
        # Accept any iterable of strings for the policy set
        if not isinstance(self.allowed_streaming_resolutions, frozenset):
            object.__setattr__(
                self,
                "allowed_streaming_resolutions",
                frozenset(self.allowed_streaming_resolutions),
            )
        unsupported = sorted(
            r for r in self.allowed_streaming_resolutions if not is_supported(r)
        )
        if unsupported:
            raise ConfigurationError(
                "allowed_streaming_resolutions contains unmapped resolutions",
                field="allowed_streaming_resolutions",
                value=unsupported,
            )

    def __repr__(self) -> str:
        return (
            f"AdapterConfig(api_key='***', realtime_enabled={self.realtime_enabled}, "
            f"allowed_streaming_resolutions={sorted(self.allowed_streaming_resolutions)})"
        )

    @classmethod
    def from_env(
        cls,
        secrets: Optional[SecretsProvider] = None,
        **overrides: object,
    ) -> "AdapterConfig":
        """Build a config whose API key comes from the environment (POLYGON_API_KEY)."""
        if secrets is None:
            from polygon_feed.adapters.env_provider import EnvSecretsProvider

            secrets = EnvSecretsProvider()
        api_key = secrets.get("polygon_api_key")
        return cls(api_key=api_key, **overrides)  # type: ignore[arg-type]
