"""
Tests for the shared retry decorator.
"""

import pytest

from shared.retry import SINGLE_RETRY, RetryConfig, RetryError, retry_on_exception


class Flaky:
    """Fails a fixed number of times before answering."""

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ValueError(f"failure {self.calls}")
        return "ok"


@pytest.mark.asyncio
async def test_single_retry_recovers_from_one_failure():
    flaky = Flaky(failures=1)
    wrapped = retry_on_exception((ValueError,), config=SINGLE_RETRY)(flaky)

    assert await wrapped() == "ok"
    assert flaky.calls == 2


@pytest.mark.asyncio
async def test_single_retry_gives_up_after_two_attempts():
    flaky = Flaky(failures=5)
    wrapped = retry_on_exception((ValueError,), config=SINGLE_RETRY)(flaky)

    with pytest.raises(RetryError) as exc_info:
        await wrapped()

    assert flaky.calls == 2
    assert exc_info.value.attempts == 2
    assert str(exc_info.value.last_exception) == "failure 2"


@pytest.mark.asyncio
async def test_unlisted_exceptions_are_not_retried():
    flaky = Flaky(failures=1)
    wrapped = retry_on_exception((KeyError,), config=RetryConfig(max_attempts=3, base_delay=0.0))(flaky)

    with pytest.raises(ValueError):
        await wrapped()
    assert flaky.calls == 1
