"""Rate-limited, deduplicating work queue for change keys.

The queue follows the controller work-queue model:

* an item added while it is already pending is merged with the pending copy;
* an item added while a worker is processing it is parked and re-queued when
  the worker calls ``done``;
* ``add_rate_limited`` re-queues an item after a delay chosen by the rate
  limiter, and ``forget`` resets the item's failure history.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Dict, Hashable, List, Optional, Set, Tuple

DEFAULT_BASE_DELAY = 0.005
DEFAULT_MAX_DELAY = 1000.0
DEFAULT_QPS = 10.0
DEFAULT_BURST = 100

# =============================================================================
# Rate Limiters
# =============================================================================


class RateLimiter(ABC):
    """Decides how long an item waits before it is retried."""

    @abstractmethod
    def when(self, item: Hashable) -> float:
        """Return the delay in seconds before ``item`` may be processed again."""
        pass

    @abstractmethod
    def forget(self, item: Hashable) -> None:
        """Drop any failure history kept for ``item``."""
        pass

    @abstractmethod
    def num_requeues(self, item: Hashable) -> int:
        """Return how many times ``item`` has been rate limited."""
        pass


class ItemExponentialFailureRateLimiter(RateLimiter):
    """Per-item exponential backoff: ``base_delay * 2**failures`` up to ``max_delay``."""

    def __init__(self, base_delay: float = DEFAULT_BASE_DELAY, max_delay: float = DEFAULT_MAX_DELAY):
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._failures: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1

        # Avoid float overflow for items that have failed a very long time.
        if exp > 64:
            return self._max_delay
        return min(self._base_delay * (2**exp), self._max_delay)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)


class BucketRateLimiter(RateLimiter):
    """Overall token bucket shared by every item."""

    def __init__(
        self,
        qps: float = DEFAULT_QPS,
        burst: int = DEFAULT_BURST,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._qps = qps
        self._burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._last)
            self._last = now
            self._tokens = min(float(self._burst), self._tokens + elapsed * self._qps)
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self._qps

    def forget(self, item: Hashable) -> None:
        pass

    def num_requeues(self, item: Hashable) -> int:
        return 0


class MaxOfRateLimiter(RateLimiter):
    """Combines limiters by taking the longest delay any of them asks for."""

    def __init__(self, *limiters: RateLimiter):
        if not limiters:
            raise ValueError("MaxOfRateLimiter needs at least one limiter")
        self._limiters = limiters

    def when(self, item: Hashable) -> float:
        return max(limiter.when(item) for limiter in self._limiters)

    def forget(self, item: Hashable) -> None:
        for limiter in self._limiters:
            limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return max(limiter.num_requeues(item) for limiter in self._limiters)


def default_controller_rate_limiter() -> RateLimiter:
    """Exponential per-item backoff (5ms..1000s) combined with a 10 qps / 100 burst bucket."""
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(DEFAULT_BASE_DELAY, DEFAULT_MAX_DELAY),
        BucketRateLimiter(DEFAULT_QPS, DEFAULT_BURST),
    )


# =============================================================================
# Queue
# =============================================================================


class RateLimitingQueue:
    """Thread-safe FIFO with per-item deduplication and delayed re-insertion."""

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._rate_limiter = rate_limiter or default_controller_rate_limiter()
        self._clock = clock
        self._cond = threading.Condition()
        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        # Delayed items: heap of (ready_at, seq, item) plus the earliest ready time per item.
        self._waiting: List[Tuple[float, int, Hashable]] = []
        self._waiting_ready: Dict[Hashable, float] = {}
        self._seq = itertools.count()
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def add(self, item: Hashable) -> None:
        with self._cond:
            self._add_locked(item)

    def add_after(self, item: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(item)
            return

        with self._cond:
            if self._shutting_down:
                return
            ready_at = self._clock() + delay
            current = self._waiting_ready.get(item)
            if current is not None and current <= ready_at:
                return
            self._waiting_ready[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._seq), item))
            # Wake sleepers so they recompute their wait timeout.
            self._cond.notify_all()

    def add_rate_limited(self, item: Hashable) -> None:
        self.add_after(item, self._rate_limiter.when(item))

    def forget(self, item: Hashable) -> None:
        self._rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self._rate_limiter.num_requeues(item)

    def get(self) -> Tuple[Optional[Hashable], bool]:
        """Block until an item is available.

        Returns ``(item, False)`` or ``(None, True)`` once the queue is shutting down.
        """
        with self._cond:
            while True:
                if self._shutting_down:
                    return None, True

                self._promote_ready_locked()
                if self._queue:
                    item = self._queue.popleft()
                    self._processing.add(item)
                    self._dirty.discard(item)
                    return item, False

                timeout = None
                if self._waiting:
                    timeout = max(0.0, self._waiting[0][0] - self._clock())
                self._cond.wait(timeout)

    def done(self, item: Hashable) -> None:
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._queue.clear()
            self._dirty.clear()
            self._waiting.clear()
            self._waiting_ready.clear()
            self._cond.notify_all()

    def _add_locked(self, item: Hashable) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def _promote_ready_locked(self) -> None:
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            ready_at, _, item = heapq.heappop(self._waiting)
            if self._waiting_ready.get(item) != ready_at:
                # Superseded by an earlier add_after for the same item.
                continue
            del self._waiting_ready[item]
            self._add_locked(item)
