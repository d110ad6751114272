"""Retry policy with exponential backoff for a single backend call."""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from backend.core.config import GenerationSettings
from backend.core.errors import ErrorKind, GenerationError

log = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class AttemptOutcome(Generic[T]):
    """Result of one attempt: either a value or a classified failure."""

    attempt: int
    value: T | None = None
    error: GenerationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None


def as_generation_error(exc: Exception) -> GenerationError:
    if isinstance(exc, GenerationError):
        return exc
    wrapped = GenerationError(str(exc) or exc.__class__.__name__, kind=ErrorKind.FATAL)
    wrapped.__cause__ = exc
    return wrapped


class RetryPolicy:
    def __init__(
        self,
        settings: GenerationSettings,
        *,
        sleep: Sleep = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._settings = settings
        self._sleep = sleep
        self._rng = rng

    def backoff(self, kind: ErrorKind, attempt: int) -> float:
        """Seconds to wait after a retryable failure on ``attempt`` (0-based)."""

        if kind is ErrorKind.RATE_LIMITED:
            base = self._settings.rate_limit_backoff
        else:
            base = self._settings.transient_backoff
        return base * (2**attempt) + self._rng() * self._settings.backoff_jitter

    def should_retry(self, error: GenerationError, allow_quota_retry: bool) -> bool:
        if error.kind is ErrorKind.FATAL:
            return False
        if error.kind is ErrorKind.RATE_LIMITED:
            return allow_quota_retry
        return True

    async def _attempt(self, attempt_fn: Callable[[int], Awaitable[T]], attempt: int) -> AttemptOutcome[T]:
        try:
            value = await attempt_fn(attempt)
        except Exception as exc:  # noqa: BLE001 - classified below and re-raised by run()
            return AttemptOutcome(attempt=attempt, error=as_generation_error(exc))
        return AttemptOutcome(attempt=attempt, value=value)

    async def run(
        self,
        attempt_fn: Callable[[int], Awaitable[T]],
        *,
        max_attempts: int = 3,
        allow_quota_retry: bool = True,
    ) -> T:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        last: AttemptOutcome[T] | None = None
        for attempt in range(max_attempts):
            last = await self._attempt(attempt_fn, attempt)
            if last.ok:
                return last.value  # type: ignore[return-value]

            error = last.error
            assert error is not None
            if not self.should_retry(error, allow_quota_retry):
                raise error
            if attempt == max_attempts - 1:
                break

            wait = self.backoff(error.kind, attempt)
            log.warning(
                "attempt %d/%d failed (%s): %s; retrying in %.1fs",
                attempt + 1,
                max_attempts,
                error.kind.value,
                error,
                wait,
            )
            await self._sleep(wait)

        assert last is not None and last.error is not None
        raise last.error


__all__ = ["AttemptOutcome", "RetryPolicy", "as_generation_error"]
