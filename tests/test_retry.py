import asyncio
import random

import pytest

from backend.core.errors import (
    ErrorKind,
    GenerationError,
    ParseFailureError,
    RateLimitedError,
    TransientError,
)
from backend.core.retry import RetryPolicy


def _failing(error_factory, calls):
    async def attempt(i):
        calls.append(i)
        raise error_factory()

    return attempt


@pytest.mark.parametrize("max_attempts", [1, 3, 5])
def test_fatal_failure_is_never_retried(settings, clock, max_attempts):
    policy = RetryPolicy(settings, sleep=clock.sleep)
    calls: list[int] = []

    with pytest.raises(ParseFailureError):
        asyncio.run(policy.run(_failing(lambda: ParseFailureError("bad json"), calls), max_attempts=max_attempts))

    assert calls == [0]
    assert clock.sleeps == []


def test_rate_limited_uses_long_exponential_backoff(settings, clock):
    policy = RetryPolicy(settings, sleep=clock.sleep, rng=random.Random(7).random)
    calls: list[int] = []

    with pytest.raises(RateLimitedError) as excinfo:
        asyncio.run(policy.run(_failing(lambda: RateLimitedError("429 RESOURCE_EXHAUSTED"), calls)))

    assert calls == [0, 1, 2]
    assert excinfo.value.kind is ErrorKind.RATE_LIMITED
    assert len(clock.sleeps) == 2
    for i, wait in enumerate(clock.sleeps, start=1):
        assert 8.0 * 2 ** (i - 1) <= wait < 8.0 * 2 ** (i - 1) + 1.0


def test_jitter_bounds_hold_at_both_extremes(settings):
    low = RetryPolicy(settings, rng=lambda: 0.0)
    high = RetryPolicy(settings, rng=lambda: 0.999999)

    assert low.backoff(ErrorKind.RATE_LIMITED, 1) == 16.0
    assert high.backoff(ErrorKind.RATE_LIMITED, 1) < 17.0
    assert low.backoff(ErrorKind.TRANSIENT, 0) == 2.0
    assert high.backoff(ErrorKind.TRANSIENT, 2) < 9.0


def test_quota_failure_is_terminal_when_quota_retry_disabled(settings, clock):
    policy = RetryPolicy(settings, sleep=clock.sleep)
    calls: list[int] = []

    with pytest.raises(RateLimitedError):
        asyncio.run(
            policy.run(_failing(lambda: RateLimitedError("quota"), calls), allow_quota_retry=False)
        )

    assert calls == [0]
    assert clock.sleeps == []


def test_transient_failure_recovers_with_short_backoff(settings, clock):
    policy = RetryPolicy(settings, sleep=clock.sleep, rng=lambda: 0.5)
    calls: list[int] = []

    async def attempt(i):
        calls.append(i)
        if i < 2:
            raise TransientError("503 UNAVAILABLE")
        return "ok"

    assert asyncio.run(policy.run(attempt)) == "ok"
    assert calls == [0, 1, 2]
    assert clock.sleeps == [2.5, 4.5]


def test_exhaustion_reraises_last_error_unchanged(settings, clock):
    policy = RetryPolicy(settings, sleep=clock.sleep)
    errors = [TransientError("first"), TransientError("second")]

    async def attempt(i):
        raise errors[i]

    with pytest.raises(TransientError) as excinfo:
        asyncio.run(policy.run(attempt, max_attempts=2))

    assert excinfo.value is errors[1]


def test_unclassified_exception_is_fatal(settings, clock):
    policy = RetryPolicy(settings, sleep=clock.sleep)
    calls: list[int] = []

    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(policy.run(_failing(lambda: KeyError("candidates"), calls)))

    assert calls == [0]
    assert excinfo.value.kind is ErrorKind.FATAL
    assert isinstance(excinfo.value.__cause__, KeyError)
