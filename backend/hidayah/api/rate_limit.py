"""
Per-client fixed-window rate limiting.

Each client key gets a counter and a reset time. The first request after
the reset time opens a new window. The map is bounded: expired windows
are dropped on every check and the oldest clients are evicted once
``max_clients`` is exceeded.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional
from loguru import logger


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window counter keyed by client (usually the client IP)."""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        max_clients: int = 10_000,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_clients = max_clients
        self._clock = clock or time.monotonic
        self._windows: OrderedDict[str, _Window] = OrderedDict()

    def check(self, client: str) -> bool:
        """
        Count a request for ``client``.

        Returns:
            True if the request is allowed, False if the client is over
            its limit for the current window
        """
        now = self._clock()
        self._evict_expired(now)

        window = self._windows.get(client)
        if window is None:
            self._windows[client] = _Window(count=1, reset_at=now + self.window_seconds)
            self._evict_if_needed()
            return True

        if window.count >= self.max_requests:
            logger.warning(f"Rate limit exceeded for client {client}")
            return False

        window.count += 1
        return True

    def reset(self):
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)

    def _evict_expired(self, now: float):
        # Windows are inserted in creation order with equal lengths, so
        # reset times are ascending from the front
        while self._windows:
            key, window = next(iter(self._windows.items()))
            if now <= window.reset_at:
                break
            del self._windows[key]

    def _evict_if_needed(self):
        while len(self._windows) > self.max_clients:
            self._windows.popitem(last=False)


def client_key(headers) -> str:
    """Client identity from proxy headers: x-forwarded-for, x-real-ip, else "anonymous"."""
    return headers.get("x-forwarded-for") or headers.get("x-real-ip") or "anonymous"
