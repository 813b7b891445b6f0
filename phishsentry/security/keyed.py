"""Per-token locking and the millisecond clock used by the session store."""

import threading
import time
from typing import Callable, Hashable

# returns the current time in milliseconds
Clock = Callable[[], float]


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class KeyedLocks:
    """
    One lock per key. Work on different keys never contends; there is no
    lock covering every key (``dict.setdefault`` is atomic under the GIL).
    """

    def __init__(self):
        self._locks = {}

    def __call__(self, key: Hashable) -> threading.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks.setdefault(key, threading.Lock())
        return lock

    def discard(self, key: Hashable) -> None:
        self._locks.pop(key, None)

    def __len__(self):
        return len(self._locks)
