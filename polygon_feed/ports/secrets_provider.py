"""SecretsProvider Port Interface.

Contract: Look up the provider API key (and any other credential) by a logical
name such as "polygon_api_key". Implementations raise when the name is unknown
or the value is empty. Values are never logged or cached here.
"""

from __future__ import annotations

from typing import Protocol


class SecretsProvider(Protocol):
    def get(self, secret_name: str) -> str:
        """Return the credential stored under `secret_name`."""
        ...
