"""Per-session sliding-window rate limiting for turn-producing endpoints."""

import json
import os
import time
from collections import deque
from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)

# POST endpoints that append to a session's transcript
LIMITED_PATHS = frozenset({"/chat", "/search"})

WINDOW_SECONDS = 60.0


class SessionRateLimiter:
    """Allows at most `limit` requests per session in any rolling window."""

    def __init__(
        self,
        limit: int | None = None,
        window: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit is None:
            limit = int(os.environ.get("RATE_LIMIT_PER_MIN", "10"))
        self.limit = limit
        self.window = window
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._hits)

    def allow(self, session_id: str) -> bool:
        """Record a request for `session_id`. False if it is over the limit."""
        now = self._clock()
        if now - self._last_sweep >= self.window:
            self._sweep(now)

        hits = self._hits.setdefault(session_id, deque())
        self._expire(hits, now)

        if len(hits) >= self.limit:
            logger.warning("rate_limit.exceeded", session_id=session_id, limit=self.limit)
            return False

        hits.append(now)
        return True

    def _expire(self, hits: deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        """Forget sessions with no hits left in the window."""
        for session_id in list(self._hits):
            hits = self._hits[session_id]
            self._expire(hits, now)
            if not hits:
                del self._hits[session_id]
        self._last_sweep = now
        logger.debug("rate_limit.swept", tracked=len(self._hits))


def session_id_from_body(body: bytes) -> str:
    """Pull `session_id` out of a JSON body; malformed bodies share one bucket."""
    try:
        session_id = json.loads(body).get("session_id")
    except (ValueError, AttributeError):
        return "unknown"
    return session_id if isinstance(session_id, str) and session_id else "unknown"
