"""
Tests for semantic_core/retry.py
Exponential backoff, retryable predicate and typed outcomes.
"""
import pytest

from conftest import RecordingSleep
from semantic_core.exceptions import ProviderError, TransientProviderError, ValidationError
from semantic_core.retry import RetryPolicy, is_retryable


class Flaky:
    """Coroutine factory failing ``failures`` times before returning ``value``."""

    def __init__(self, failures, value="ok"):
        self.failures = list(failures)
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.value


class TestDelays:
    """Test the backoff schedule."""

    def test_delay_schedule(self):
        policy = RetryPolicy()
        assert [policy.delay_for(i) for i in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    async def test_waits_one_two_four_seconds(self):
        sleep = RecordingSleep()
        fn = Flaky([TransientProviderError("503")] * 10)
        outcome = await RetryPolicy().run(fn, sleep=sleep)

        assert not outcome.ok
        assert outcome.attempts == 4
        assert fn.calls == 4
        assert sleep.delays == [1.0, 2.0, 4.0]
        assert isinstance(outcome.error, TransientProviderError)

    async def test_delay_is_capped(self):
        sleep = RecordingSleep()
        await RetryPolicy(max_retries=5).run(Flaky([TransientProviderError("503")] * 10), sleep=sleep)
        assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 10.0]


class TestOutcomes:
    """Test success, non-retryable errors and unwrap."""

    async def test_recovers_after_transient_failures(self):
        sleep = RecordingSleep()
        fn = Flaky([TransientProviderError("429"), TransientProviderError("429")], value=42)
        outcome = await RetryPolicy().run(fn, sleep=sleep)

        assert outcome.ok
        assert outcome.value == 42
        assert outcome.attempts == 3
        assert sleep.delays == [1.0, 2.0]

    async def test_validation_error_attempted_once(self):
        sleep = RecordingSleep()
        fn = Flaky([ValidationError("bad input")])
        outcome = await RetryPolicy().run(fn, sleep=sleep)

        assert fn.calls == 1
        assert outcome.attempts == 1
        assert sleep.delays == []
        with pytest.raises(ValidationError):
            outcome.unwrap()

    async def test_non_retryable_provider_error_not_retried(self):
        fn = Flaky([ProviderError("unauthorized", retryable=False, status_code=401)])
        outcome = await RetryPolicy().run(fn, sleep=RecordingSleep())
        assert fn.calls == 1
        assert not outcome.ok

    async def test_zero_retries_means_one_attempt(self):
        fn = Flaky([TransientProviderError("503")])
        outcome = await RetryPolicy(max_retries=0).run(fn, sleep=RecordingSleep())
        assert fn.calls == 1
        assert outcome.attempts == 1


class TestPredicate:
    def test_is_retryable(self):
        assert is_retryable(TransientProviderError("x"))
        assert is_retryable(RuntimeError("network blip"))
        assert not is_retryable(ValidationError("x"))
        assert not is_retryable(ProviderError("x", retryable=False))
