"""
Rate limiters: how long to wait before a key is re-added to the queue.

A rate limiter is asked for a delay every time a key is re-added after
a failure (``when``), and is told when the key is fully processed and its
backoff history can be dropped (``forget``).

The per-key limiters keep the history of consecutive failures of every key
and grow the delays with every failure. The overall limiters (the bucket)
protect the API from the bursts of retries of many keys at once.
The default limiter of a controller combines both.
"""
import time
from collections.abc import Hashable
from typing import Protocol

from astertower._cogs.configs import configuration


class RateLimiter(Protocol):

    def when(self, item: Hashable) -> float:
        """ Record one more failure of the item, and return its delay (in seconds). """
        ...

    def forget(self, item: Hashable) -> None:
        """ Drop the history of the item, as if it never failed before. """
        ...

    def num_requeues(self, item: Hashable) -> int:
        """ How many times the item has failed since the last forgetting. """
        ...


class ItemExponentialFailureRateLimiter:
    """
    A per-item exponential backoff: ``base_delay * 2 ** failures``, capped.
    """

    def __init__(self, base_delay: float, max_delay: float) -> None:
        super().__init__()
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._failures: dict[Hashable, int] = {}

    def when(self, item: Hashable) -> float:
        exp = self._failures.get(item, 0)
        self._failures[item] = exp + 1
        try:
            backoff = self._base_delay * 2 ** exp
        except OverflowError:
            return self._max_delay
        return min(backoff, self._max_delay)

    def forget(self, item: Hashable) -> None:
        self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        return self._failures.get(item, 0)


class ItemFastSlowRateLimiter:
    """
    A per-item limiter that retries quickly for a few attempts, then slowly.
    """

    def __init__(self, fast_delay: float, slow_delay: float, max_fast_attempts: int) -> None:
        super().__init__()
        self._fast_delay = fast_delay
        self._slow_delay = slow_delay
        self._max_fast_attempts = max_fast_attempts
        self._failures: dict[Hashable, int] = {}

    def when(self, item: Hashable) -> float:
        self._failures[item] = self._failures.get(item, 0) + 1
        if self._failures[item] <= self._max_fast_attempts:
            return self._fast_delay
        return self._slow_delay

    def forget(self, item: Hashable) -> None:
        self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        return self._failures.get(item, 0)


class BucketRateLimiter:
    """
    An overall token bucket: ``qps`` tokens per second, up to ``burst`` at once.

    It does not track the items individually: every call takes one token,
    or reserves a future token and returns the time until it is available.
    """

    def __init__(self, qps: float, burst: int) -> None:
        super().__init__()
        if qps <= 0:
            raise ValueError(f"The bucket rate must be positive, got {qps!r}.")
        self._qps = qps
        self._burst = burst
        self._tokens = float(burst)
        self._last = time.monotonic()

    def when(self, item: Hashable) -> float:
        now = time.monotonic()
        self._tokens = min(float(self._burst), self._tokens + (now - self._last) * self._qps)
        self._last = now
        self._tokens -= 1
        if self._tokens >= 0:
            return 0.0
        return -self._tokens / self._qps

    def forget(self, item: Hashable) -> None:
        pass

    def num_requeues(self, item: Hashable) -> int:
        return 0


class MaxOfRateLimiter:
    """
    A combination of limiters: the worst (longest) delay of all of them wins.
    """

    def __init__(self, *limiters: RateLimiter) -> None:
        super().__init__()
        self._limiters = limiters

    def when(self, item: Hashable) -> float:
        # Every limiter must record the failure, so no short-circuiting here.
        delays = [limiter.when(item) for limiter in self._limiters]
        return max(delays, default=0.0)

    def forget(self, item: Hashable) -> None:
        for limiter in self._limiters:
            limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return max((limiter.num_requeues(item) for limiter in self._limiters), default=0)


def default_controller_rate_limiter(
        settings: configuration.OperatorSettings,
) -> RateLimiter:
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(
            base_delay=settings.queueing.base_delay,
            max_delay=settings.queueing.max_delay,
        ),
        BucketRateLimiter(
            qps=settings.queueing.bucket_qps,
            burst=settings.queueing.bucket_burst,
        ),
    )
