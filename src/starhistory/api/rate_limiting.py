from asyncio import Lock, sleep
from time import monotonic
import logging

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token‑bucket limiter tuned for GitHub GraphQL cost points.

    Callers acquire an estimated cost before each request and settle the
    difference once GitHub reports the real cost of the query.
    """

    def __init__(self, *, capacity: int, refill_per_min: int):
        self.capacity = capacity
        self._tokens = float(capacity)
        self._refill_rate = refill_per_min / 60  # tokens per second
        self._updated = monotonic()
        self._lock = Lock()

    @property
    def tokens(self) -> float:
        return self._tokens

    async def acquire(self, cost: int):
        async with self._lock:
            self._refill()
            while self._tokens < cost:
                sleep_time = (cost - self._tokens) / self._refill_rate
                logger.debug(f"Rate limiter waiting {sleep_time:.2f}s for {cost} points")
                await sleep(sleep_time)
                self._refill()
            self._tokens -= cost

    async def settle(self, *, estimated: int, actual: int):
        """Charge (or refund) the gap between an estimated and reported cost."""
        async with self._lock:
            self._refill()
            self._tokens = min(self.capacity, self._tokens - (actual - estimated))

    def _refill(self):
        now = monotonic()
        delta = now - self._updated
        self._updated = now
        self._tokens = min(self.capacity, self._tokens + delta * self._refill_rate)
