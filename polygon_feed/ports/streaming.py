"""StreamingClient Port Interface.

Contract: Publish/subscribe access to the provider's push stream. Channels are
named strings ("XA.BTC-USD"); handlers are registered per event prefix ("XA")
and receive each decoded event mapping together with its local receive
timestamp (Unix ms).
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Protocol

EventHandler = Callable[[Mapping[str, Any], int], Awaitable[None]]


class StreamingClient(Protocol):
    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def subscribe(self, channel: str) -> None:
        """Ask the provider to start pushing `channel`."""
        ...

    async def unsubscribe(self, channel: str) -> None:
        """Ask the provider to stop pushing `channel`."""
        ...

    def on(self, event_prefix: str, handler: EventHandler) -> None:
        """Register `handler` for every event whose type equals `event_prefix`."""
        ...
