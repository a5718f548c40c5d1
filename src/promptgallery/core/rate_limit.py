"""Fixed-window rate limiting.

:class:`RateLimiter` counts requests per client key inside fixed windows of
``window_seconds``.  Counters live in an injected :class:`CounterStore`;
each application instance builds its own limiter.  An external cache can
back the limiter by implementing the same two-method interface.

The ``max_requests + 1``-th request inside one window is rejected with
:class:`~promptgallery.core.errors.RateLimitError`.  Once the window
expires the counter starts again from zero.
"""

from __future__ import annotations

import abc
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from promptgallery.core.errors import RateLimitError


@dataclass(frozen=True)
class WindowCount:
    """Request count for one key in the current window.

    Attributes:
        count: Requests recorded in the window, including the current one.
        window_start: Clock value at which the window opened.
    """

    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of :meth:`RateLimiter.hit` for an allowed request."""

    limit: int
    remaining: int
    reset_after: int


class CounterStore(abc.ABC):
    """Storage for per-key fixed-window counters."""

    @abc.abstractmethod
    def increment(self, key: str, window_seconds: float, now: float) -> WindowCount:
        """Record one request for *key* and return the window's count.

        A window older than *window_seconds* is discarded and a new one
        opened at *now*.
        """

    @abc.abstractmethod
    def reset(self, key: str | None = None) -> None:
        """Forget one key, or every key when *key* is ``None``."""


class MemoryCounterStore(CounterStore):
    """Process-local counter store.

    A lock guards the dictionary because the same store may be reached from
    the event loop and from threadpool-run handlers.
    """

    def __init__(self) -> None:
        self._windows: dict[str, WindowCount] = {}
        self._lock = threading.Lock()

    def increment(self, key: str, window_seconds: float, now: float) -> WindowCount:
        with self._lock:
            current = self._windows.get(key)
            if current is None or now - current.window_start >= window_seconds:
                current = WindowCount(count=1, window_start=now)
            else:
                current = WindowCount(count=current.count + 1, window_start=current.window_start)
            self._windows[key] = current
            # Drop expired windows so idle clients do not accumulate.
            if len(self._windows) > 10_000:
                self._purge(window_seconds, now)
            return current

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def __len__(self) -> int:
        return len(self._windows)

    def _purge(self, window_seconds: float, now: float) -> None:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.window_start >= window_seconds
        ]
        for key in expired:
            del self._windows[key]


class RateLimiter:
    """Fixed-window limiter over a :class:`CounterStore`.

    Args:
        store: Counter storage.
        max_requests: Requests allowed per key per window.
        window_seconds: Window length.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        store: CounterStore,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be > 0, got {window_seconds}")
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    def hit(self, key: str) -> RateLimitDecision:
        """Record a request for *key*.

        Returns:
            The decision for an allowed request.

        Raises:
            RateLimitError: If the key exceeded its quota for this window.
        """
        now = self._clock()
        window = self.store.increment(key, self.window_seconds, now)
        reset_after = max(
            1, math.ceil(window.window_start + self.window_seconds - now)
        )
        if window.count > self.max_requests:
            raise RateLimitError(
                "Too many requests, please try again later.",
                retry_after=reset_after,
            )
        return RateLimitDecision(
            limit=self.max_requests,
            remaining=self.max_requests - window.count,
            reset_after=reset_after,
        )
