"""
Sliding-window rate limiting for outbound generation requests.
"""

import math
import time
from typing import Callable, Optional

from jira_planner.core.constants import GENERATION_RATE_LIMIT_KEY
from jira_planner.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Simple in-memory sliding-window rate limiter.

    Denied requests are not queued; callers decide how to surface them.
    """

    def __init__(
        self,
        max_requests: int = 20,
        window_seconds: int = 60,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.time
        self._requests: dict[str, list[float]] = {}

    def _prune(self, key: str, now: float) -> list[float]:
        window_start = now - self.window_seconds
        timestamps = [t for t in self._requests.get(key, []) if t > window_start]
        self._requests[key] = timestamps
        return timestamps

    def check_and_record(self, key: str = GENERATION_RATE_LIMIT_KEY) -> bool:
        """
        Check whether a request is allowed and record it when it is.

        Args:
            key: Limiter bucket, one per kind of outbound request

        Returns:
            True if the request is admitted, False if rate limited
        """
        now = self._clock()
        timestamps = self._prune(key, now)

        if len(timestamps) >= self.max_requests:
            logger.warning(
                "Rate limit reached",
                key=key,
                max_requests=self.max_requests,
                window_seconds=self.window_seconds,
            )
            return False

        timestamps.append(now)
        return True

    def get_retry_after(self, key: str = GENERATION_RATE_LIMIT_KEY) -> int:
        """
        Get the number of seconds until the next request is admitted.

        Returns:
            0 when a request would be admitted now
        """
        now = self._clock()
        timestamps = self._prune(key, now)
        if len(timestamps) < self.max_requests:
            return 0

        window_end = min(timestamps) + self.window_seconds
        return max(1, math.ceil(window_end - now))

    def get_usage(self, key: str = GENERATION_RATE_LIMIT_KEY) -> int:
        """Number of requests counted in the current window."""
        return len(self._prune(key, self._clock()))

    def reset(self, key: Optional[str] = None) -> None:
        """Forget recorded requests for one key, or for all keys."""
        if key is None:
            self._requests.clear()
        else:
            self._requests.pop(key, None)
