"""
auth/rate_limit.py -- In-process fixed-window rate limiter.

Algorithm (fixed window, not sliding):
  - No entry for the key, or more than window_seconds have passed since the
    window started: start a fresh window with count 1 and allow. A hit at
    exactly window_start + window_seconds still counts against the old window.
  - Count below limit: increment and allow.
  - Count at or above limit: deny WITHOUT incrementing.

A burst of up to 2x the limit is possible across a window boundary. That is
the accepted behavior of the fixed-window scheme.

Known limitation: counters live in this process only. They are best-effort,
are not shared between workers and reset on restart. Callers that need a
strict global quota must not rely on this component alone; a multi-process
deployment would replace it with a shared counter store behind the same
allow() interface.

Concurrency: one threading.Lock guards the mapping. FastAPI runs sync route
handlers in a thread pool, so check-then-increment must be atomic. sweep()
takes the same lock for a single bounded pass.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger("phonegate.ratelimit")


@dataclass
class WindowEntry:
    """Attempts observed for one key in its current window."""

    count: int
    window_start: float
    window_seconds: float

    def expired(self, now: float) -> bool:
        return now - self.window_start > self.window_seconds


class FixedWindowRateLimiter:
    """Fixed-window counters keyed by purpose and subject.

    Usage:
        limiter = FixedWindowRateLimiter()
        if not limiter.allow(login_ip_key(ip), limit=10, window_seconds=60):
            ...  # reject with 429
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, WindowEntry] = {}
        self._lock = threading.Lock()

    def allow(self, key: str, limit: int, window_seconds: float) -> bool:
        """Consume one unit of quota for key. Return False if the quota is spent."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expired(now):
                self._entries[key] = WindowEntry(count=1, window_start=now, window_seconds=window_seconds)
                return True
            if entry.count >= limit:
                return False
            entry.count += 1
            return True

    def retry_after(self, key: str) -> int:
        """Seconds until the window for key rolls over (0 if no active window)."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expired(now):
                return 0
            remaining = entry.window_start + entry.window_seconds - now
        return max(1, int(remaining + 0.999))

    def sweep(self) -> int:
        """Drop entries whose window has elapsed. Returns the number removed.

        Not needed for correctness -- allow() already treats stale entries as
        absent. It bounds memory to the keys active within one window.
        """
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ---------------------------------------------------------------------------
# Key helpers -- one independent counter per purpose x subject
# ---------------------------------------------------------------------------


def signup_ip_key(ip: str) -> str:
    return f"signup:ip:{ip}"


def login_ip_key(ip: str) -> str:
    return f"login:ip:{ip}"


def login_phone_key(phone_e164: str) -> str:
    return f"login:phone:{phone_e164}"
