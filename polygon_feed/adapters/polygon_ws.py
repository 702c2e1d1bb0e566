"""
WebSocket client for the Polygon push stream.

Handles the WebSocket lifecycle including:
- Connection establishment with timeout
- API key authentication handshake
- Channel subscribe/unsubscribe, replayed after reconnects
- Exponential backoff reconnection with jitter
- Event-emitter style handler registration per event type
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import aiohttp
import orjson

from polygon_feed.config import ConnectionConfig
from polygon_feed.errors import AuthenticationError, ConnectionError
from polygon_feed.ports.streaming import EventHandler
from polygon_feed.router import EventRouter
from polygon_feed.types import ConnectionState

logger = logging.getLogger(__name__)

STATUS_EVENT = "status"
AUTH_SUCCESS = "auth_success"
AUTH_FAILED = "auth_failed"


@dataclass
class ConnectionMetrics:
    """Counters for the streaming connection."""

    messages_received: int = 0
    bytes_received: int = 0
    reconnections: int = 0
    errors: int = 0
    connected_at: Optional[float] = None  # monotonic time
    last_message_at: Optional[float] = None  # monotonic time


class PolygonWebSocketClient:
    """
    StreamingClient implementation for wss://socket.polygon.io.

    The client does NOT interpret aggregate events - it decodes frames and
    hands every event to the EventRouter, which calls the handlers registered
    through `on()`.

    Usage:
        async def on_agg(event: Mapping[str, Any], recv_ts: int) -> None:
            print(event)

        client = PolygonWebSocketClient(api_key="...", config=ConnectionConfig())
        client.on("XA", on_agg)
        await client.connect()
        await client.subscribe("XA.BTC-USD")
        # ... later ...
        await client.close()
    """

    def __init__(
        self,
        api_key: str,
        config: Optional[ConnectionConfig] = None,
        name: str = "polygon_ws",
    ) -> None:
        self._api_key = api_key
        self._config = config or ConnectionConfig()
        self._name = name

        # State
        self._state = ConnectionState.DISCONNECTED
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receive_task: Optional[asyncio.Task[None]] = None

        # Channels survive reconnects (dict keeps subscription order)
        self._channels: dict[str, None] = {}

        # Routing
        self._router = EventRouter()
        self._router.register_handler(STATUS_EVENT, self._on_status)

        # Auth handshake
        self._auth_event = asyncio.Event()
        self._auth_status: Optional[str] = None
        self._auth_message: Optional[str] = None

        # Reconnection state
        self._reconnect_attempt = 0
        self._should_reconnect = True
        self._reconnect_task: Optional[asyncio.Task[None]] = None

        self._metrics = ConnectionMetrics()
        self._last_error: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def channels(self) -> list[str]:
        """Channels currently requested, in subscription order."""
        return list(self._channels)

    @property
    def metrics(self) -> ConnectionMetrics:
        return self._metrics

    @property
    def router(self) -> EventRouter:
        return self._router

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.debug(f"[{self._name}] State: {old_state.value} -> {new_state.value}")

    # --- StreamingClient ---

    def on(self, event_prefix: str, handler: EventHandler) -> None:
        self._router.register_handler(event_prefix, handler)

    async def subscribe(self, channel: str) -> None:
        """Request a channel. Sent now if connected, otherwise on the next connect."""
        if channel in self._channels:
            return
        self._channels[channel] = None
        if self.is_connected:
            await self._send_action("subscribe", channel)

    async def unsubscribe(self, channel: str) -> None:
        if channel not in self._channels:
            return
        del self._channels[channel]
        if self.is_connected:
            await self._send_action("unsubscribe", channel)

    async def connect(self) -> None:
        """
        Establish and authenticate the WebSocket connection.

        Raises:
            AuthenticationError: if the API key is rejected (not retried)
            ConnectionError: if connection fails after all retries
        """
        if self._state in (
            ConnectionState.CONNECTED,
            ConnectionState.CONNECTING,
            ConnectionState.AUTHENTICATING,
        ):
            logger.warning(f"[{self._name}] Already connected or connecting")
            return

        self._should_reconnect = True
        self._reconnect_attempt = 0
        await self._connect_with_retry()

    async def close(self) -> None:
        """Close the connection gracefully."""
        logger.info(f"[{self._name}] Closing connection")
        self._should_reconnect = False
        self._set_state(ConnectionState.CLOSING)

        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None

        await self._cleanup_connection()

        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

        self._set_state(ConnectionState.CLOSED)
        logger.info(f"[{self._name}] Connection closed")

    # --- Connection lifecycle ---

    async def _connect_with_retry(self) -> None:
        """Connect with exponential backoff retry logic."""
        self._set_state(ConnectionState.CONNECTING)

        while (
            self._should_reconnect
            and self._reconnect_attempt <= self._config.max_reconnect_attempts
        ):
            try:
                await self._establish_connection()
                await self._authenticate()
                self._reconnect_attempt = 0
                self._set_state(ConnectionState.CONNECTED)
                await self._replay_subscriptions()
                return

            except AuthenticationError:
                await self._cleanup_connection()
                self._set_state(ConnectionState.DISCONNECTED)
                raise

            except Exception as e:
                await self._cleanup_connection()
                self._reconnect_attempt += 1
                self._metrics.errors += 1
                self._last_error = str(e)

                if self._reconnect_attempt > self._config.max_reconnect_attempts:
                    self._set_state(ConnectionState.DISCONNECTED)
                    raise ConnectionError(
                        f"Failed to connect after {self._config.max_reconnect_attempts} attempts",
                        url=self._config.url,
                        reconnect_attempt=self._reconnect_attempt,
                        component="PolygonWebSocketClient",
                    ) from e

                delay = self._calculate_backoff_delay()
                logger.warning(
                    f"[{self._name}] Connection failed (attempt {self._reconnect_attempt}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                self._set_state(ConnectionState.RECONNECTING)
                await asyncio.sleep(delay)

        # Only reached when close() stopped the retries
        if self._state not in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            self._set_state(ConnectionState.DISCONNECTED)
        raise ConnectionError(
            "Connection attempts stopped before connecting",
            url=self._config.url,
            reconnect_attempt=self._reconnect_attempt,
            component="PolygonWebSocketClient",
        )

    async def _establish_connection(self) -> None:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.connect_timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)

        logger.info(f"[{self._name}] Connecting to {self._config.url}")
        self._ws = await self._session.ws_connect(
            self._config.url,
            heartbeat=self._config.heartbeat_s,
        )
        self._metrics.connected_at = time.monotonic()

        self._receive_task = asyncio.create_task(
            self._receive_loop(), name=f"{self._name}_receive"
        )

    async def _authenticate(self) -> None:
        """Send the API key and wait for the auth status event."""
        self._set_state(ConnectionState.AUTHENTICATING)
        self._auth_event.clear()
        self._auth_status = None
        self._auth_message = None

        await self._send({"action": "auth", "params": self._api_key})
        try:
            await asyncio.wait_for(self._auth_event.wait(), timeout=self._config.auth_timeout_s)
        except asyncio.TimeoutError as e:
            raise ConnectionError(
                "Timed out waiting for authentication",
                url=self._config.url,
                reconnect_attempt=self._reconnect_attempt,
                component="PolygonWebSocketClient",
            ) from e

        if self._auth_status != AUTH_SUCCESS:
            raise AuthenticationError(
                f"Authentication rejected: {self._auth_message or self._auth_status}",
                url=self._config.url,
                component="PolygonWebSocketClient",
            )
        logger.info(f"[{self._name}] Authenticated")

    async def _replay_subscriptions(self) -> None:
        if self._channels:
            await self._send_action("subscribe", ",".join(self._channels))

    async def _on_status(self, event: Mapping[str, Any], recv_ts: int) -> None:
        status = event.get("status")
        message = event.get("message")
        logger.debug(f"[{self._name}] Status: {status} {message or ''}")
        if status in (AUTH_SUCCESS, AUTH_FAILED):
            self._auth_status = status
            self._auth_message = message
            self._auth_event.set()

    def _calculate_backoff_delay(self) -> float:
        """Calculate exponential backoff delay with jitter."""
        base_delay = self._config.base_reconnect_delay_s
        max_delay = self._config.max_reconnect_delay_s
        jitter = self._config.reconnect_jitter

        delay = base_delay * (2 ** (self._reconnect_attempt - 1))
        delay = min(delay, max_delay)

        jitter_range = delay * jitter
        delay += random.uniform(-jitter_range, jitter_range)

        return float(max(0.1, delay))  # Minimum 100ms

    async def _receive_loop(self) -> None:
        """Main loop for receiving WebSocket frames."""
        if self._ws is None:
            return

        try:
            async for msg in self._ws:
                recv_ts = int(time.time() * 1000)
                self._metrics.last_message_at = time.monotonic()
                self._metrics.messages_received += 1

                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        frame = orjson.loads(msg.data)
                        self._metrics.bytes_received += len(msg.data)
                        await self._router.route(frame, recv_ts)
                    except Exception as e:
                        logger.error(f"[{self._name}] Message handling error: {e}")
                        self._metrics.errors += 1

                elif msg.type == aiohttp.WSMsgType.CLOSE:
                    logger.info(f"[{self._name}] Server closed connection")
                    break

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"[{self._name}] WebSocket error: {self._ws.exception()}")
                    self._metrics.errors += 1
                    break

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Receive loop cancelled")
            raise
        except Exception as e:
            logger.error(f"[{self._name}] Receive loop error: {e}")
            self._last_error = str(e)
            self._metrics.errors += 1

        # Only an established connection is re-established here; failures
        # during connect are retried by _connect_with_retry itself.
        if self._should_reconnect and self._state == ConnectionState.CONNECTED:
            logger.info(f"[{self._name}] Connection lost, initiating reconnect")
            self._metrics.reconnections += 1
            self._reconnect_task = asyncio.create_task(
                self._reconnect(), name=f"{self._name}_reconnect"
            )

    async def _reconnect(self) -> None:
        self._receive_task = None  # the loop that scheduled us has already finished
        await self._cleanup_connection()
        self._set_state(ConnectionState.RECONNECTING)
        try:
            await self._connect_with_retry()
        except ConnectionError as e:
            logger.error(f"[{self._name}] Reconnect failed: {e}")

    async def _cleanup_connection(self) -> None:
        task = self._receive_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._receive_task = None

        if self._ws and not self._ws.closed:
            await self._ws.close()
        self._ws = None

    async def _send_action(self, action: str, params: str) -> None:
        logger.debug(f"[{self._name}] {action} {params}")
        await self._send({"action": action, "params": params})

    async def _send(self, payload: dict[str, Any]) -> None:
        if self._ws is None or self._ws.closed:
            raise ConnectionError(
                "WebSocket is not open",
                url=self._config.url,
                component="PolygonWebSocketClient",
            )
        await self._ws.send_str(orjson.dumps(payload).decode())
