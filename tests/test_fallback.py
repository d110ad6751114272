import asyncio

import pytest

from backend.core.config import CredentialState, GenerationSettings
from backend.core.errors import (
    GenerationError,
    MissingCredentialError,
    ParseFailureError,
    RateLimitedError,
    TransientError,
)
from backend.core.fallback import ModelFallback
from backend.core.retry import RetryPolicy


def _fallback(settings, clock, credential=None):
    retry = RetryPolicy(settings, sleep=clock.sleep, rng=lambda: 0.0)
    return ModelFallback(settings, credential or settings.credential, retry, sleep=clock.sleep)


def test_advances_past_fatal_model_and_returns_next_result(settings, clock):
    calls: list[tuple[str, int]] = []

    async def operation(model, api_key, attempt):
        calls.append((model, attempt))
        if model == "A":
            raise ParseFailureError("unreadable")
        return {"model": model}

    result = asyncio.run(_fallback(settings, clock).run(operation, ["A", "B"]))

    assert result == {"model": "B"}
    assert calls == [("A", 0), ("B", 0)]


def test_each_model_gets_its_own_retry_budget(settings, clock):
    calls: list[tuple[str, int]] = []

    async def operation(model, api_key, attempt):
        calls.append((model, attempt))
        if model == "A" or attempt < 2:
            raise TransientError("network")
        return "done"

    result = asyncio.run(_fallback(settings, clock).run(operation, ["A", "B"], max_attempts=3))

    assert result == "done"
    assert calls == [("A", 0), ("A", 1), ("A", 2), ("B", 0), ("B", 1), ("B", 2)]
    # two backoffs on A, 1s model cooldown, two backoffs on B
    assert clock.sleeps == [2.0, 4.0, 1.0, 2.0, 4.0]


def test_quota_exhaustion_waits_longer_before_next_model(settings, clock):
    async def operation(model, api_key, attempt):
        if model == "A":
            raise RateLimitedError("429")
        return model

    result = asyncio.run(_fallback(settings, clock).run(operation, ["A", "B"], max_attempts=1))

    assert result == "B"
    assert clock.sleeps == [8.0]


def test_all_models_exhausted_reraises_final_error(settings, clock):
    raised: list[GenerationError] = []

    async def operation(model, api_key, attempt):
        error = TransientError(f"{model} down")
        raised.append(error)
        raise error

    with pytest.raises(TransientError) as excinfo:
        asyncio.run(_fallback(settings, clock).run(operation, ["A", "B"], max_attempts=2))

    assert excinfo.value is raised[-1]
    assert str(excinfo.value) == "B down"
    # no cooldown after the last candidate
    assert clock.sleeps[-1] == 2.0


@pytest.mark.parametrize("key", [None, "", "   ", "undefined"])
def test_missing_credential_short_circuits_before_any_call(clock, key):
    settings = GenerationSettings(api_key=key)
    calls: list[str] = []

    async def operation(model, api_key, attempt):
        calls.append(model)
        return "never"

    fallback = _fallback(settings, clock, CredentialState.from_key(key))
    with pytest.raises(MissingCredentialError):
        asyncio.run(fallback.run(operation, ["A", "B"]))

    assert calls == []
    assert clock.sleeps == []


def test_operation_receives_credential(settings, clock):
    seen: list[str] = []

    async def operation(model, api_key, attempt):
        seen.append(api_key)
        return True

    asyncio.run(_fallback(settings, clock).run(operation, ["A"]))
    assert seen == ["test-key"]
