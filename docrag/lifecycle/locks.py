from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional

from ..errors import DeadlineExceeded


class KeyedLocks:
    """Lock table keyed by document id; entries are dropped when unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._refs: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        key = str(key)
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._refs[key] = self._refs.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class Deadline:
    """Wall-clock budget for one processing run."""

    def __init__(self, seconds: float, clock=time.monotonic):
        self.seconds = float(seconds)
        self._clock = clock
        self._end = clock() + self.seconds

    def remaining(self) -> float:
        return max(0.0, self._end - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, step: str = "") -> None:
        if self.expired():
            where = f" during {step}" if step else ""
            raise DeadlineExceeded(f"Processing deadline of {self.seconds:g}s exceeded{where}")

    def bound(self, timeout: Optional[float]) -> float:
        """Per-call timeout clipped to what is left of the budget."""
        self.check()
        rem = self.remaining()
        return rem if timeout is None else min(timeout, rem)
