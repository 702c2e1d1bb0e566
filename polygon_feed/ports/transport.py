"""HttpTransport Port Interface.

Contract: Issue a single GET against the provider REST API and return the decoded
JSON body. Implementations raise FetchError on transport failures and non-2xx
statuses, chaining the underlying cause. No retries.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol


class HttpTransport(Protocol):
    async def get_json(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """GET `path` (relative to the configured base URL) and return the decoded JSON."""
        ...

    async def close(self) -> None: ...
