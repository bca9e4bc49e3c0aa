"""Fixed-window request rate limiter.

The first hit for a key opens a window of ``window_seconds``; hits are counted
until ``limit`` is reached, after which requests are refused until the window
resets. Two stores:

- MemoryRateLimiter: per-process dict. Only throttles within one running
  instance.
- DatabaseRateLimiter: one row per key in the shared database, incremented
  with a conditional UPDATE so several instances agree on the count.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.rate_limit import RateLimitModel

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: float  # Unix timestamp (seconds) when the window ends

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset)),
        }


class MemoryRateLimiter:
    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._store: dict[str, tuple[int, float]] = {}  # key -> (count, reset_at)
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        expired = [k for k, (_, reset_at) in self._store.items() if now > reset_at]
        for key in expired:
            del self._store[key]

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            self._purge(now)
            entry = self._store.get(key)
            if entry is None:
                reset_at = now + self.window_seconds
                self._store[key] = (1, reset_at)
                return RateLimitResult(True, self.limit, self.limit - 1, reset_at)

            count, reset_at = entry
            if count >= self.limit:
                return RateLimitResult(False, self.limit, 0, reset_at)

            count += 1
            self._store[key] = (count, reset_at)
            return RateLimitResult(True, self.limit, self.limit - count, reset_at)


class DatabaseRateLimiter:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._session_factory = session_factory
        self._clock = clock

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        db = self._session_factory()
        try:
            return self._hit(db, key, now, retry=True)
        finally:
            db.close()

    def _hit(self, db: Session, key: str, now: float, retry: bool) -> RateLimitResult:
        R = RateLimitModel
        reset_at = now + self.window_seconds

        # Restart an expired window
        restarted = db.execute(
            update(R)
            .where(R.key == key, R.reset_at < now)
            .values(count=1, reset_at=reset_at)
            .execution_options(synchronize_session=False)
        )
        if restarted.rowcount == 1:
            db.commit()
            return RateLimitResult(True, self.limit, self.limit - 1, reset_at)

        # Count inside the current window, only while under the limit
        counted = db.execute(
            update(R)
            .where(R.key == key, R.count < self.limit)
            .values(count=R.count + 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        row: Optional[RateLimitModel] = db.get(R, key, populate_existing=True)

        if row is None:
            try:
                db.add(R(key=key, count=1, reset_at=reset_at))
                db.commit()
            except IntegrityError:
                # Another instance created the row first
                db.rollback()
                if retry:
                    return self._hit(db, key, now, retry=False)
                raise
            return RateLimitResult(True, self.limit, self.limit - 1, reset_at)

        if counted.rowcount == 1:
            return RateLimitResult(True, self.limit, max(self.limit - row.count, 0), row.reset_at)
        return RateLimitResult(False, self.limit, 0, row.reset_at)


def client_ip(request: Request) -> str:
    """Client address: X-Forwarded-For (first hop), X-Real-IP, socket peer, else 'anonymous'."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"
