#!/usr/bin/env python3
"""Common error types shared across modules.

Provides shared lightweight exceptions to avoid circular imports.
"""

from typing import Optional


class RelayError(Exception):
    """Raised when a single relay attempt yields no usable document.

    Attributes:
        relay: Redacted relay identifier (scheme://host) for diagnostics.
        status: HTTP status, when the relay answered at all.
    """

    def __init__(self, message: str, relay: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.relay = relay
        self.status = status


class CacheEntryError(Exception):
    """Raised when a persisted cache entry cannot be decoded."""

    def __init__(self, key: str, message: str = "Corrupt cache entry"):
        super().__init__(f"{message}: {key}")
        self.key = key


__all__ = ["RelayError", "CacheEntryError"]
