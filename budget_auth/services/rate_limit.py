"""Fixed-window attempt counter for the password login endpoints.

State lives in process memory, one window per key. Counting happens without
awaiting, so concurrent requests on the event loop cannot interleave inside
``hit``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from budget_auth.core.security import utc_now


@dataclass
class _Window:
    started_at: datetime
    hits: int = 0


class LoginRateLimiter:
    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], datetime] = utc_now) -> None:
        self.limit = limit
        self.window = timedelta(seconds=max(window_seconds, 1))
        self.clock = clock
        self._windows: Dict[str, _Window] = {}

    def hit(self, key: str) -> Optional[int]:
        """Count one attempt for ``key``.

        Returns ``None`` while the key is within its allowance, otherwise the
        number of seconds until its window resets.
        """
        if self.limit <= 0:
            return None
        now = self.clock()
        self._prune(now)
        window = self._windows.get(key)
        if window is None:
            window = self._windows[key] = _Window(started_at=now)
        window.hits += 1
        if window.hits <= self.limit:
            return None
        remaining = (window.started_at + self.window - now).total_seconds()
        return max(int(remaining), 1)

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    def _prune(self, now: datetime) -> None:
        expired = [k for k, w in self._windows.items() if now >= w.started_at + self.window]
        for key in expired:
            del self._windows[key]
