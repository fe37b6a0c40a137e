"""Per-connection message throttling."""

import time


class TokenBucket:
    """Token bucket: `rate` tokens per second refill up to `burst`.

    consume() takes one token and returns False when none is available.
    """

    def __init__(self, rate: float, burst: int) -> None:
        if rate <= 0 or burst <= 0:
            raise ValueError(f"rate and burst must be positive, got rate={rate} burst={burst}")
        self._rate = rate
        self._burst = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()

    @property
    def available(self) -> float:
        return self._tokens

    def consume(self) -> bool:
        now = time.monotonic()
        self._tokens = min(float(self._burst), self._tokens + (now - self._last_refill) * self._rate)
        self._last_refill = now
        if self._tokens < 1.0:
            return False
        self._tokens -= 1.0
        return True
