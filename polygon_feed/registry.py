"""
In-memory table of active chart subscriptions.

Single-writer semantics on one event loop: no locking. Iteration is insertion
order. Dispatch passes should iterate over snapshot() so that add/remove during
a pass does not disturb the pass.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Optional

from polygon_feed.types import StreamChannel, Subscription

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """Insertion-ordered subscriptions keyed by an opaque caller-provided key."""

    def __init__(self) -> None:
        self._entries: list[Subscription] = []

    def add(self, subscription: Subscription) -> Optional[Subscription]:
        """
        Append a subscription.

        A previous entry with the same key is replaced: it is removed,
        deactivated and returned so the caller can release its resources.
        """
        replaced = self.remove_by_key(subscription.key)
        if replaced is not None:
            logger.warning(f"Subscription key {subscription.key!r} re-used, replacing entry")
        subscription.active = True
        self._entries.append(subscription)
        return replaced

    def remove_by_key(self, key: str) -> Optional[Subscription]:
        """Remove the first entry with `key`. No-op (returns None) if absent."""
        for idx, entry in enumerate(self._entries):
            if entry.key == key:
                del self._entries[idx]
                entry.active = False
                return entry
        return None

    def for_each(self, visitor: Callable[[Subscription], None]) -> None:
        """Visit every entry in insertion order."""
        for entry in self.snapshot():
            visitor(entry)

    def snapshot(self) -> list[Subscription]:
        """Copy of the current entries, in insertion order."""
        return list(self._entries)

    def find_by_channel(self, channel: StreamChannel) -> list[Subscription]:
        """Entries whose derived stream channel equals `channel`."""
        return [entry for entry in self._entries if entry.channel == channel]

    def clear(self) -> None:
        for entry in self._entries:
            entry.active = False
        self._entries.clear()

    def __iter__(self) -> Iterator[Subscription]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return any(entry.key == key for entry in self._entries)
