"""
Custom exceptions for the Polygon datafeed adapter.

Exception hierarchy:
- FeedAdapterError (base)
  - ConfigurationError: Invalid configuration
  - UnsupportedResolutionError: Chart resolution without an aggregation mapping
  - SymbolTranslationError: Ticker cannot be turned into a stream symbol
  - FetchError: REST transport or provider failure
  - MalformedResponseError: Provider answered with an unexpected shape
  - ConnectionError: WebSocket connection issues
    - AuthenticationError: WebSocket auth rejected
  - MessageParseError: Invalid/malformed stream events
"""

from __future__ import annotations

from typing import Any, Optional


class FeedAdapterError(Exception):
    """Base exception for all adapter errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConfigurationError(FeedAdapterError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class UnsupportedResolutionError(FeedAdapterError):
    """Raised when a chart resolution cannot be mapped to an aggregation query."""

    def __init__(
        self,
        resolution: str,
        *,
        reason: str = "unsupported resolution",
        component: Optional[str] = None,
    ) -> None:
        self.resolution = resolution
        self.reason = reason
        super().__init__(
            f"{reason}: {resolution!r}",
            component=component,
            details={"resolution": resolution},
        )


class SymbolTranslationError(FeedAdapterError):
    """Raised when a ticker is too short for the stream symbol transform."""

    def __init__(
        self,
        message: str,
        *,
        ticker: Optional[str] = None,
        component: Optional[str] = None,
    ) -> None:
        self.ticker = ticker
        details = {"ticker": ticker} if ticker is not None else None
        super().__init__(message, component=component, details=details)


class FetchError(FeedAdapterError):
    """Raised when a REST request fails. The underlying cause is chained."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.status = status
        details = details or {}
        if url:
            details["url"] = url
        if status is not None:
            details["status"] = status
        super().__init__(message, component=component, details=details)


class MalformedResponseError(FeedAdapterError):
    """Raised when the provider returns a payload that does not match the expected shape."""

    def __init__(
        self,
        message: str,
        *,
        expected: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.expected = expected
        details = details or {}
        if expected:
            details["expected"] = expected
        super().__init__(message, component=component, details=details)


class ConnectionError(FeedAdapterError):
    """Raised when WebSocket connection fails or is lost."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        reconnect_attempt: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.reconnect_attempt = reconnect_attempt
        details = details or {}
        if url:
            details["url"] = url
        details["reconnect_attempt"] = reconnect_attempt
        super().__init__(message, component=component, details=details)


class AuthenticationError(ConnectionError):
    """Raised when the streaming endpoint rejects the API key."""


class MessageParseError(FeedAdapterError):
    """Raised when a stream event cannot be parsed."""

    def __init__(
        self,
        message: str,
        *,
        expected_type: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.expected_type = expected_type
        details = details or {}
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(message, component=component, details=details)
