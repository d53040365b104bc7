from __future__ import annotations

import threading
import time
from typing import Callable

from rangeserve.models.transfer import MAX_CLIENT_SESSION_LENGTH


class ClientSessionRegistry:
    """
    Client-supplied `?session=` tokens seen within the last `ttl_seconds`.
    Diagnostics only; nothing in admission or range handling reads it.
    """

    def __init__(self, ttl_seconds: float = 300.0, *, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._last_seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def touch(self, token: str) -> None:
        token = token[:MAX_CLIENT_SESSION_LENGTH]
        now = self._clock()
        with self._lock:
            self._last_seen[token] = now
            self._prune_locked(now)

    def prune(self) -> int:
        with self._lock:
            return self._prune_locked(self._clock())

    def count(self) -> int:
        with self._lock:
            self._prune_locked(self._clock())
            return len(self._last_seen)

    def _prune_locked(self, now: float) -> int:
        expired = [t for t, seen in self._last_seen.items() if now - seen > self.ttl_seconds]
        for token in expired:
            del self._last_seen[token]
        return len(expired)
