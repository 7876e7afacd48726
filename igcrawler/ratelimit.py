"""Adaptive delay between requests to the paginated query endpoint."""

import logging
import math
import threading
import time
from typing import Callable
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

INITIAL_DELAY = 0.0
MAXIMUM_DELAY = 5.0


def next_delay(delay: float) -> float:
    """
    Grow the inter-request delay (seconds).

    The delay is read as 2.5 * log10(n) for n requests so far; the result is the delay
    for n + 1. That grows quickly at first and flattens out, reaching MAXIMUM_DELAY after
    about a hundred calls. Truncated to whole milliseconds.
    """
    request_count = round(10 ** (delay / 2.5))
    nxt = math.floor(2.5 * math.log10(request_count + 1) * 1000) / 1000
    return min(max(nxt, INITIAL_DELAY), MAXIMUM_DELAY)


def is_query_request(url: str) -> bool:
    """True for requests against the paginated graphql endpoint."""
    return "graphql" in urlparse(url).path


class RateGovernor:
    """
    Per-crawl throttle. The first call passes straight through; every later call grows
    the delay, then waits until that long after the previous request went out. Only one
    caller waits at a time.
    """

    def __init__(
        self,
        *,
        initial_delay: float = INITIAL_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._delay = initial_delay
        self._sleep = sleep
        self._clock = clock
        self._last_at: float | None = None
        self._lock = threading.Lock()

    @property
    def delay(self) -> float:
        return self._delay

    def throttle(self) -> float:
        """Block until the next request may go out. Returns seconds waited."""
        with self._lock:
            if self._last_at is None:
                self._last_at = self._clock()
                return 0.0
            self._delay = next_delay(self._delay)
            logger.debug("query delay now %.3fs", self._delay)
            waited = max(0.0, self._last_at + self._delay - self._clock())
            if waited > 0:
                self._sleep(waited)
            self._last_at = self._clock()
            return waited
