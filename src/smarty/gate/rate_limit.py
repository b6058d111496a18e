"""Fixed-window rate limiting per client identity.

Each identity (client IP) gets a window that starts with its first
request. Within the window at most ``max_requests`` are allowed; once
the window is older than ``window_seconds`` the next request opens a new
window with a count of 1. Bursts straddling a window boundary can exceed
the ceiling; that imprecision is accepted.

The table lives in a RateLimiter instance owned by the application, not
in module state, and is guarded by a lock so it is safe to share across
threads. The clock is injectable for deterministic tests.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from starlette.requests import Request

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRecord:
    """Window state for one identity."""

    window_start: float
    count: int


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate-limit check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the current window after this one.
        retry_after: Seconds until the window resets (0 when allowed).
    """

    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiter:
    """Process-wide fixed-window limiter.

    Attributes:
        max_requests: Ceiling per window.
        window_seconds: Window length.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()
        self._last_prune = clock()

    def check(self, identity: str) -> RateLimitDecision:
        """Record a request from ``identity`` and decide whether to allow it."""
        with self._lock:
            now = self._clock()
            if now - self._last_prune >= self.window_seconds:
                self._prune_expired(now)
            record = self._records.get(identity)

            if record is None or now - record.window_start >= self.window_seconds:
                self._records[identity] = RateLimitRecord(window_start=now, count=1)
                return RateLimitDecision(
                    allowed=True, remaining=self.max_requests - 1
                )

            if record.count >= self.max_requests:
                retry_after = record.window_start + self.window_seconds - now
                logger.warning(
                    "Rate limit exceeded",
                    extra={"identity": identity, "count": record.count},
                )
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    retry_after=max(1, math.ceil(retry_after)),
                )

            record.count += 1
            return RateLimitDecision(
                allowed=True, remaining=self.max_requests - record.count
            )

    def get_record(self, identity: str) -> Optional[RateLimitRecord]:
        """Return a copy of the identity's current record, if any."""
        with self._lock:
            record = self._records.get(identity)
            if record is None:
                return None
            return RateLimitRecord(record.window_start, record.count)

    def prune(self) -> int:
        """Drop records whose window has expired.

        ``check`` also does this once per window, so the table holds at
        most the identities seen in the last two windows.

        Returns:
            Number of records removed.
        """
        with self._lock:
            return self._prune_expired(self._clock())

    def _prune_expired(self, now: float) -> int:
        expired = [
            identity
            for identity, record in self._records.items()
            if now - record.window_start >= self.window_seconds
        ]
        for identity in expired:
            del self._records[identity]
        self._last_prune = now
        if expired:
            logger.debug(
                "Pruned expired rate-limit records",
                extra={"count": len(expired)},
            )
        return len(expired)


def client_identity(request: Request) -> str:
    """Identify the client by the first forwarded-for address or the socket peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"
