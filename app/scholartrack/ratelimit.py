"""
Fixed-window attempt limiter.

One instance lives in `app.extensions["rate_limiter"]`; nothing is kept at module level.
Attempts older than the window are dropped on every check, and when more than
`max_keys` keys are tracked, expired keys go first, then the least recently hit.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from flask import Flask, current_app

from app.scholartrack.errors import RateLimitedError


class RateLimiter:
    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        max_keys: int = 10_000,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self.max_keys = max_keys
        self._clock = clock
        self._attempts: dict[str, list[datetime]] = {}

    def _live(self, key: str, now: datetime) -> list[datetime]:
        cutoff = now - self.window
        live = [t for t in self._attempts.get(key, []) if t > cutoff]
        if live:
            self._attempts[key] = live
        else:
            self._attempts.pop(key, None)
        return live

    def is_limited(self, key: str) -> bool:
        return len(self._live(key, self._clock())) >= self.limit

    def retry_after(self, key: str) -> int:
        """Seconds until the oldest attempt in the window expires (0 when not limited)."""
        now = self._clock()
        live = self._live(key, now)
        if len(live) < self.limit:
            return 0
        oldest = min(live)
        return max(1, int((oldest + self.window - now).total_seconds()))

    def hit(self, key: str) -> None:
        now = self._clock()
        live = self._live(key, now)
        # re-insert so dict order tracks the most recent hit
        self._attempts.pop(key, None)
        self._attempts[key] = live + [now]
        if len(self._attempts) > self.max_keys:
            self.prune()

    def check_and_hit(self, key: str) -> None:
        """Raise RateLimitedError if `key` is over the limit, otherwise count one attempt."""
        if self.is_limited(key):
            raise RateLimitedError(self.retry_after(key), "Too many attempts. Please wait before retrying.")
        self.hit(key)

    def prune(self) -> int:
        """Drop expired keys, then the least recently hit ones until at most `max_keys` remain."""
        cutoff = self._clock() - self.window
        removed = 0
        # keys are ordered by last hit, so every expired key sits before every live one
        while self._attempts:
            key = next(iter(self._attempts))
            if self._attempts[key][-1] > cutoff and len(self._attempts) <= self.max_keys:
                break
            del self._attempts[key]
            removed += 1
        return removed

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._attempts.clear()
        else:
            self._attempts.pop(key, None)

    def __len__(self) -> int:
        return len(self._attempts)


def init_rate_limiter(app: Flask, limiter: RateLimiter | None = None) -> RateLimiter:
    limiter = limiter or RateLimiter(
        limit=int(app.config.get("LOGIN_RATE_LIMIT", 5)),
        window_seconds=int(app.config.get("LOGIN_RATE_WINDOW", 300)),
    )
    app.extensions["rate_limiter"] = limiter
    return limiter


def rate_limiter() -> RateLimiter:
    return current_app.extensions["rate_limiter"]
