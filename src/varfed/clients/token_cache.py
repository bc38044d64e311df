"""Time-bounded cache of bearer credentials, keyed by provider.

The only state shared across concurrent requests. Expired entries are
evicted lazily on read; there is no background sweeper.

Usage:
    cache = TokenCache()
    token = cache.get("cmhToken")
    if token is None:
        token = await fetch_token()
        cache.put("cmhToken", token, ttl=3599)
"""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class TokenCache:
    """In-memory credential cache with per-entry TTL.

    Safe for concurrent use from multiple in-flight requests (and threads).

    Args:
        clock: Monotonic time source in seconds (default: time.monotonic)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        """Return the cached credential, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                logger.debug("Token %s expired, evicted", key)
                return None
            return value

    def put(self, key: str, value: str, ttl: float) -> None:
        """Cache a credential for `ttl` seconds. Non-positive TTLs are ignored."""
        if ttl <= 0:
            logger.debug("Not caching token %s with non-positive ttl %.1f", key, ttl)
            return
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
