"""Model fallback: each candidate model gets its own full retry budget."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from backend.core.config import CredentialState, GenerationSettings
from backend.core.errors import ErrorKind, GenerationError, MissingCredentialError
from backend.core.retry import RetryPolicy, Sleep

log = logging.getLogger(__name__)

T = TypeVar("T")

# operation(model, api_key, attempt)
Operation = Callable[[str, str, int], Awaitable[T]]


class ModelFallback:
    def __init__(
        self,
        settings: GenerationSettings,
        credential: CredentialState,
        retry: RetryPolicy,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._credential = credential
        self._retry = retry
        self._sleep = sleep

    @property
    def credential(self) -> CredentialState:
        return self._credential

    def cooldown(self, error: GenerationError) -> float:
        if error.kind is ErrorKind.RATE_LIMITED:
            return self._settings.quota_fallback_cooldown
        return self._settings.fallback_cooldown

    async def run(
        self,
        operation: Operation[T],
        candidate_models: Sequence[str],
        *,
        max_attempts: int = 3,
        allow_quota_retry: bool = True,
    ) -> T:
        if not self._credential.present:
            raise MissingCredentialError()
        if not candidate_models:
            raise ValueError("candidate_models must not be empty")

        api_key = self._credential.key
        assert api_key is not None
        last_error: GenerationError | None = None

        for index, model in enumerate(candidate_models):

            async def attempt(i: int, model: str = model) -> T:
                return await operation(model, api_key, i)

            try:
                return await self._retry.run(
                    attempt,
                    max_attempts=max_attempts,
                    allow_quota_retry=allow_quota_retry,
                )
            except GenerationError as exc:
                last_error = exc
                log.warning("model %s failed (%s): %s", model, exc.kind.value, exc)
                if index == len(candidate_models) - 1:
                    break
                wait = self.cooldown(exc)
                log.info("falling back to %s in %.1fs", candidate_models[index + 1], wait)
                await self._sleep(wait)

        assert last_error is not None
        raise last_error


__all__ = ["ModelFallback"]
