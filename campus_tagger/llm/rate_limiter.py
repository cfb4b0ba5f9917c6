"""Per-model request and token budgets for the primary completion endpoint."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from .token_estimator import estimate_tokens

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

MINUTE = 60.0


class TokenBucket:
    """
    Token bucket that refills continuously at `capacity` tokens per `interval` seconds.

    Acquisition never fails, it only waits. Waiters are served in arrival order and
    the refill-check-debit sequence runs under a lock, so concurrent callers on the
    same event loop never see a stale balance.
    """

    def __init__(self, capacity: float, interval: float = MINUTE, clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep):
        if capacity <= 0 or interval <= 0:
            raise ValueError("capacity and interval must be positive")
        self.capacity = float(capacity)
        self.interval = float(interval)
        self._clock = clock
        self._sleep = sleep
        self._content = float(capacity)
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        """Tokens added per second."""
        return self.capacity / self.interval

    @property
    def content(self) -> float:
        self._refill()
        return self._content

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._content = min(self.capacity, self._content + elapsed * self.rate)
        self._last_refill = now

    async def acquire(self, count: float = 1) -> None:
        """Wait until `count` tokens are available, then remove them."""
        if count <= 0:
            return
        # Requests bigger than the bucket wait for a full bucket and go into debt
        needed = min(float(count), self.capacity)
        async with self._lock:
            self._refill()
            while self._content < needed:
                wait_seconds = (needed - self._content) / self.rate
                await self._sleep(wait_seconds)
                self._refill()
            self._content -= count


class ModelRateLimiter:
    """Requests-per-minute and tokens-per-minute budgets for one model."""

    def __init__(self, requests_per_minute: int, tokens_per_minute: int, clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep):
        self.request_budget = TokenBucket(requests_per_minute, MINUTE, clock=clock, sleep=sleep)
        self.token_budget = TokenBucket(tokens_per_minute, MINUTE, clock=clock, sleep=sleep)

    async def acquire(self, tokens: int) -> None:
        await self.request_budget.acquire(1)
        await self.token_budget.acquire(tokens)


# (requests per minute, tokens per minute)
DEFAULT_MODEL_LIMITS: Dict[str, tuple] = {
    "gpt-3.5-turbo-0613": (3500, 90000),
    "gpt-3.5-turbo-16k-0613": (3500, 90000),
    "gpt-4-0613": (200, 40000),
    "gpt-4o-mini": (500, 200000),
}


class RateLimiterRegistry:
    """Rate limiters keyed by model name. Unknown models aren't limited."""

    def __init__(self):
        self._limiters: Dict[str, ModelRateLimiter] = {}

    def register(self, model_name: str, limiter: ModelRateLimiter) -> None:
        self._limiters[model_name] = limiter

    def get(self, model_name: str) -> Optional[ModelRateLimiter]:
        return self._limiters.get(model_name)

    def __contains__(self, model_name: str) -> bool:
        return model_name in self._limiters

    async def admit(self, model_name: str, message_text: str) -> None:
        """Wait until a request with `message_text` fits in the model's budgets."""
        limiter = self._limiters.get(model_name)
        if limiter is None:
            return

        tokens = estimate_tokens(message_text)
        logger.debug("Admitting request to %s (~%d tokens)", model_name, tokens)
        await limiter.acquire(tokens)

    @classmethod
    def with_defaults(cls, clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep) -> "RateLimiterRegistry":
        """Registry with the provider limits of the models we use.

        Models sharing limits share one limiter, matching how the provider pools them.
        """
        registry = cls()
        shared: Dict[tuple, ModelRateLimiter] = {}
        for model_name, limits in DEFAULT_MODEL_LIMITS.items():
            if limits not in shared:
                shared[limits] = ModelRateLimiter(*limits, clock=clock, sleep=sleep)
            registry.register(model_name, shared[limits])
        return registry
