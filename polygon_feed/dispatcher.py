"""
Bar update dispatching.

The dispatcher owns exactly one UpdateStrategy, chosen when the adapter is
built and never switched afterwards:

- PollingStrategy: every `interval_s` fetch the trailing window for every
  subscription and deliver the returned bars.
- StreamingStrategy: subscribe one stream channel per instrument and deliver
  pushed aggregates to the subscriptions of that channel.

State Machine:
    [UNINITIALIZED] --start()--> [POLLING | STREAMING] --stop()--> [STOPPED]
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Optional

from polygon_feed.clock import Clock, RealtimeClock
from polygon_feed.config import PollingConfig
from polygon_feed.errors import FeedAdapterError
from polygon_feed.fetcher import BarFetcher
from polygon_feed.handlers import AggregateHandler
from polygon_feed.ports.streaming import StreamingClient
from polygon_feed.registry import SubscriptionRegistry
from polygon_feed.symbols import SymbolTranslator
from polygon_feed.types import Bar, DispatcherState, DispatcherStats, StreamEvent, Subscription

logger = logging.getLogger(__name__)


class UpdateStrategy(ABC):
    """How new bars reach the subscriptions. One instance per dispatcher."""

    mode: DispatcherState

    def __init__(self) -> None:
        self._dispatcher: Optional[UpdateDispatcher] = None

    @property
    def dispatcher(self) -> "UpdateDispatcher":
        if self._dispatcher is None:
            raise RuntimeError(f"{type(self).__name__} is not started")
        return self._dispatcher

    async def start(self, dispatcher: "UpdateDispatcher") -> None:
        self._dispatcher = dispatcher
        await self._start()

    @abstractmethod
    async def _start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    def prepare(self, subscription: Subscription) -> None:
        """Fill strategy-specific fields before the subscription is registered."""

    async def on_subscribe(self, subscription: Subscription) -> None:
        """Called after the subscription was added to the registry."""

    async def on_unsubscribe(self, subscription: Subscription) -> None:
        """Called after the subscription was removed from the registry."""


class PollingStrategy(UpdateStrategy):
    """
    Periodic polling of the aggregates endpoint.

    Each tick spawns one independent fetch per subscription and returns
    immediately, so a slow fetch never delays the next tick. Fetches for the
    same subscription may therefore overlap and deliver the same bar twice;
    delivery is at-least-once, not exactly-once.
    """

    mode = DispatcherState.POLLING

    def __init__(
        self,
        fetcher: BarFetcher,
        config: Optional[PollingConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__()
        self._fetcher = fetcher
        self._config = config or PollingConfig()
        self._clock = clock or RealtimeClock()
        self._timer_task: Optional[asyncio.Task[None]] = None
        self._in_flight: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def _start(self) -> None:
        self._timer_task = asyncio.create_task(self._timer_loop(), name="polling_timer")
        logger.info(f"Polling every {self._config.interval_s}s ({self._config.window_s}s window)")

    async def stop(self) -> None:
        tasks = [t for t in (self._timer_task, *self._in_flight) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._timer_task = None
        self._in_flight.clear()

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.interval_s)
            self.tick()

    def tick(self) -> list[asyncio.Task[None]]:
        """
        Spawn one fetch per current subscription over [now - window, now].

        Returns the spawned tasks; callers never need to await them.
        """
        dispatcher = self.dispatcher
        dispatcher.stats.ticks += 1

        now_ms = self._clock.now()
        to_s = now_ms / 1000
        from_s = (now_ms - self._config.window_s * 1000) / 1000

        tasks: list[asyncio.Task[None]] = []
        for subscription in dispatcher.registry.snapshot():
            task = asyncio.create_task(
                self._poll_one(subscription, from_s, to_s),
                name=f"poll_{subscription.key}",
            )
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            tasks.append(task)
        return tasks

    async def _poll_one(self, subscription: Subscription, from_s: float, to_s: float) -> None:
        dispatcher = self.dispatcher
        dispatcher.stats.fetches += 1
        try:
            bars = await self._fetcher.fetch(
                subscription.instrument, subscription.resolution, from_s, to_s
            )
        except FeedAdapterError as e:
            dispatcher.stats.fetch_errors += 1
            logger.warning(f"Poll failed for {subscription.key}: {e}")
            return
        except Exception as e:
            dispatcher.stats.fetch_errors += 1
            logger.error(f"Unexpected poll error for {subscription.key}: {e}", exc_info=True)
            return

        for bar in bars:
            await dispatcher.deliver(subscription, bar)


class StreamingStrategy(UpdateStrategy):
    """
    Push updates from the streaming client.

    Channels are reference counted: the first subscription of a channel
    subscribes it on the client, the last removal unsubscribes it. Events are
    delivered only to subscriptions of the event's channel.
    """

    mode = DispatcherState.STREAMING

    def __init__(self, client: StreamingClient, translator: Optional[SymbolTranslator] = None) -> None:
        super().__init__()
        self._client = client
        self._translator = translator or SymbolTranslator()
        self._handler = AggregateHandler(on_event=self._on_stream_event)
        self._refcounts: dict[str, int] = {}
        self._handler_registered = False

    @property
    def handler(self) -> AggregateHandler:
        return self._handler

    @property
    def channels(self) -> dict[str, int]:
        """Active channels and how many subscriptions use each."""
        return dict(self._refcounts)

    async def _start(self) -> None:
        # start() may be retried after a failed connect
        if not self._handler_registered:
            self._client.on(self._translator.config.channel_prefix, self._handler.handle)
            self._handler_registered = True
        await self._client.connect()
        logger.info(f"Streaming {self._translator.config.channel_prefix} aggregates")

    async def stop(self) -> None:
        await self._client.close()
        self._refcounts.clear()

    def prepare(self, subscription: Subscription) -> None:
        subscription.channel = self._translator.to_channel(subscription.instrument)

    async def on_subscribe(self, subscription: Subscription) -> None:
        channel = subscription.channel
        if channel is None:
            return
        count = self._refcounts.get(channel, 0)
        self._refcounts[channel] = count + 1
        if count == 0:
            await self._client.subscribe(channel)

    async def on_unsubscribe(self, subscription: Subscription) -> None:
        channel = subscription.channel
        if channel is None or channel not in self._refcounts:
            return
        self._refcounts[channel] -= 1
        if self._refcounts[channel] <= 0:
            del self._refcounts[channel]
            await self._client.unsubscribe(channel)

    async def _on_stream_event(self, event: StreamEvent) -> None:
        dispatcher = self.dispatcher
        dispatcher.stats.events_received += 1

        matches = dispatcher.registry.find_by_channel(event.channel)
        if not matches:
            dispatcher.stats.events_unmatched += 1
            logger.debug(f"No subscription for channel {event.channel}")
            return

        for subscription in matches:
            await dispatcher.deliver(subscription, event.bar)


class UpdateDispatcher:
    """
    Delivers new bars to the entries of a SubscriptionRegistry through one
    UpdateStrategy.

    Usage:
        dispatcher = UpdateDispatcher(registry, PollingStrategy(fetcher))
        await dispatcher.start()
        await dispatcher.subscribe(subscription)
        ...
        await dispatcher.stop()
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        strategy: UpdateStrategy,
        name: str = "dispatcher",
    ) -> None:
        self._registry = registry
        self._strategy = strategy
        self._name = name
        self._state = DispatcherState.UNINITIALIZED
        self._stats = DispatcherStats()

    @property
    def state(self) -> DispatcherState:
        return self._state

    @property
    def strategy(self) -> UpdateStrategy:
        return self._strategy

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def stats(self) -> DispatcherStats:
        return self._stats

    async def start(self) -> None:
        """Start the strategy. Only the first call has an effect."""
        if self._state != DispatcherState.UNINITIALIZED:
            logger.warning(f"[{self._name}] Cannot start from state: {self._state.value}")
            return

        await self._strategy.start(self)
        self._state = self._strategy.mode
        logger.info(f"[{self._name}] Started in {self._state.value} mode")

    async def stop(self) -> None:
        if self._state == DispatcherState.STOPPED:
            return
        if self._state != DispatcherState.UNINITIALIZED:
            await self._strategy.stop()
        self._registry.clear()
        self._state = DispatcherState.STOPPED
        logger.info(f"[{self._name}] Stopped")

    async def subscribe(self, subscription: Subscription) -> None:
        """
        Register a subscription.

        Raises:
            SymbolTranslationError: if the strategy cannot derive its channel
        """
        self._strategy.prepare(subscription)
        replaced = self._registry.add(subscription)
        await self._strategy.on_subscribe(subscription)
        if replaced is not None:
            await self._strategy.on_unsubscribe(replaced)
        logger.debug(f"[{self._name}] Subscribed {subscription.key} ({subscription.channel})")

    async def unsubscribe(self, key: str) -> Optional[Subscription]:
        """Remove the subscription with `key`. Unknown keys are ignored."""
        removed = self._registry.remove_by_key(key)
        if removed is None:
            return None
        await self._strategy.on_unsubscribe(removed)
        logger.debug(f"[{self._name}] Unsubscribed {key}")
        return removed

    async def deliver(self, subscription: Subscription, bar: Bar) -> bool:
        """
        Invoke the subscription's callback with `bar`.

        Returns False if the subscription was removed in the meantime.
        Callback errors are logged and never propagate to other subscribers.
        """
        if not subscription.active:
            return False
        try:
            result = subscription.on_bar(bar)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._stats.callback_errors += 1
            logger.error(
                f"[{self._name}] Callback error for {subscription.key}: {e}",
                exc_info=True,
            )
            return True
        self._stats.bars_delivered += 1
        return True
