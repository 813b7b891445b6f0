"""
rate_limit.py

Per-caller sliding-window admission control: at most ``limit`` admitted
requests in any trailing ``window_seconds``.

Built on the ``limits`` moving-window strategy (the same library flask-limiter
uses for the outer per-IP limit). The default in-memory storage locks per key
and expires old entries itself; pass ``storage`` (e.g. from
``limits.storage.storage_from_string(REDIS_URL)``) to share windows between
processes.

Requires:
    pip install limits
"""

import logging
from typing import Optional

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage
from limits.strategies import MovingWindowRateLimiter

logger = logging.getLogger("phishsentry.rate_limit")

DEFAULT_LIMIT = 100
DEFAULT_WINDOW_SECONDS = 60
NAMESPACE = "phishsentry-caller"


class RateLimiter:

    def __init__(self, limit: int = DEFAULT_LIMIT,
                 window_seconds: int = DEFAULT_WINDOW_SECONDS,
                 storage: Optional[Storage] = None):
        if limit < 1 or window_seconds < 1:
            raise ValueError("limit and window must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self.item = RateLimitItemPerSecond(limit, window_seconds, namespace=NAMESPACE)
        self.storage = storage if storage is not None else MemoryStorage()
        self._strategy = MovingWindowRateLimiter(self.storage)

    def admit(self, caller_id: str) -> bool:
        """Record a request for ``caller_id``; False (and nothing recorded) when over the limit."""
        if self._strategy.hit(self.item, caller_id):
            return True
        logger.info("rate limit hit for caller %s", caller_id)
        return False

    def remaining(self, caller_id: str) -> int:
        return max(0, self._strategy.get_window_stats(self.item, caller_id).remaining)
