"""Tests for the token bucket rate limiter."""

from unittest.mock import patch

import pytest

from quiz.server.rate_limit import TokenBucket


class TestTokenBucket:
    def test_burst_allows_up_to_capacity(self):
        bucket = TokenBucket(rate=1.0, burst=5)
        assert all(bucket.consume() for _ in range(5))

    def test_over_burst_rejected(self):
        bucket = TokenBucket(rate=1.0, burst=3)
        for _ in range(3):
            bucket.consume()
        assert bucket.consume() is False

    def test_refill_restores_tokens(self):
        bucket = TokenBucket(rate=10.0, burst=5)
        for _ in range(5):
            bucket.consume()

        with patch("quiz.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = bucket._last_refill + 0.5
            assert bucket.consume() is True
            assert bucket.available == pytest.approx(4.0)

    def test_refill_capped_at_burst(self):
        bucket = TokenBucket(rate=10.0, burst=5)

        with patch("quiz.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = bucket._last_refill + 100.0
            assert all(bucket.consume() for _ in range(5))
            assert bucket.consume() is False

    @pytest.mark.parametrize(("rate", "burst"), [(0, 5), (-1.0, 5), (1.0, 0)])
    def test_non_positive_parameters_rejected(self, rate, burst):
        with pytest.raises(ValueError, match="must be positive"):
            TokenBucket(rate=rate, burst=burst)
