from __future__ import annotations

import heapq
import itertools
import time
from collections import deque
from threading import Condition


class WorkQueue:
    """Deduplicating, rate-limited queue of object keys.

    - a key is queued at most once however often it is added
    - a key handed out by get() is not handed out again until done()
    - a key added while being processed is queued again on done()
    """

    def __init__(self, base_delay_s: float = 0.005, max_delay_s: float = 300.0):
        self.base_delay_s = max(0.0, float(base_delay_s))
        self.max_delay_s = max(self.base_delay_s, float(max_delay_s))
        self._cond = Condition()
        self._queue: deque[str] = deque()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._waiting: list[tuple[float, int, str]] = []  # (ready_at, seq, key)
        self._seq = itertools.count()
        self._failures: dict[str, int] = {}
        self._shutting_down = False

    def _add_locked(self, key: str) -> None:
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def _promote_ready_locked(self) -> None:
        now = time.monotonic()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, key = heapq.heappop(self._waiting)
            self._add_locked(key)

    def add(self, key: str) -> None:
        with self._cond:
            if self._shutting_down:
                return
            self._add_locked(key)

    def add_after(self, key: str, delay_s: float) -> None:
        if delay_s <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (time.monotonic() + delay_s, next(self._seq), key))
            self._cond.notify()

    def backoff_for(self, key: str) -> float:
        with self._cond:
            n = self._failures.get(key, 0)
        return min(self.base_delay_s * (2**n), self.max_delay_s)

    def add_rate_limited(self, key: str) -> float:
        """Requeue key after an exponential per-key backoff. Returns the delay."""
        with self._cond:
            n = self._failures.get(key, 0)
            self._failures[key] = n + 1
        delay = min(self.base_delay_s * (2**n), self.max_delay_s)
        self.add_after(key, delay)
        return delay

    def num_requeues(self, key: str) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def forget(self, key: str) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def get(self, timeout: float | None = None) -> str | None:
        """Block until a key is ready. Returns None on shutdown or timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None
                self._promote_ready_locked()
                if self._queue:
                    break
                now = time.monotonic()
                wait: float | None = None
                if self._waiting:
                    wait = max(0.0, self._waiting[0][0] - now)
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: str) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def pending(self) -> int:
        with self._cond:
            return len(self._queue) + len(self._waiting)

    def in_flight(self) -> int:
        with self._cond:
            return len(self._processing)

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)
