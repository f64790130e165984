"""Tests for the exponential backoff policy."""

import pytest

from open_completions.llm.backoff import RetryPolicy


class TestRetryPolicy:
    def test_defaults(self):
        p = RetryPolicy()
        assert p.max_retries == 3
        assert p.base_delay == 1.0
        assert p.max_delay == 30.0
        assert p.respect_retry_after is True

    def test_doubles_per_attempt(self):
        p = RetryPolicy(base_delay=0.5, max_delay=100)
        assert [p.delay(i) for i in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_capped_at_max_delay(self):
        p = RetryPolicy(base_delay=1.0, max_delay=5.0)
        assert p.delay(2) == 4.0
        assert p.delay(3) == 5.0
        assert p.delay(10) == 5.0

    def test_huge_attempt_does_not_overflow(self):
        p = RetryPolicy(base_delay=1.0, max_delay=30.0)
        assert p.delay(10_000) == 30.0

    def test_negative_attempt_treated_as_first(self):
        p = RetryPolicy(base_delay=2.0)
        assert p.delay(-3) == 2.0

    def test_monotonic(self):
        p = RetryPolicy(base_delay=0.1, max_delay=7.0)
        delays = [p.delay(i) for i in range(20)]
        assert delays == sorted(delays)
        assert all(d <= 7.0 for d in delays)

    def test_frozen(self):
        p = RetryPolicy()
        with pytest.raises(AttributeError):
            p.max_retries = 5  # type: ignore[misc]
