"""Process-wide wiring of the workspace service."""
from __future__ import annotations

import asyncio
import random
from typing import Callable

import httpx

from backend.core.config import GenerationSettings, load_settings
from backend.core.fallback import ModelFallback
from backend.core.retry import RetryPolicy, Sleep
from backend.infrastructure import GeminiAdapter, GenerativeBackend, InMemoryWorkspaceRepository
from backend.workers.batch import BatchRunner

from .generation import GenerationService
from .workspaces import WorkspaceService


def build_workspace_service(
    settings: GenerationSettings,
    *,
    backend: GenerativeBackend | None = None,
    http_client: httpx.AsyncClient | None = None,
    sleep: Sleep = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> WorkspaceService:
    """Assemble adapter, retry, fallback, tasks, runner and state store from ``settings``."""

    credential = settings.credential
    if backend is None:
        backend = GeminiAdapter(settings, http_client=http_client)
    retry = RetryPolicy(settings, sleep=sleep, rng=rng)
    fallback = ModelFallback(settings, credential, retry, sleep=sleep)
    tasks = GenerationService(backend, fallback, settings)
    repository = InMemoryWorkspaceRepository()
    runner = BatchRunner(repository, settings, sleep=sleep)
    return WorkspaceService(repository, tasks, runner, settings, credential)


_service: WorkspaceService | None = None


def configure_workspace_service(service: WorkspaceService) -> None:
    """Install the service used by the HTTP routes."""

    global _service
    _service = service


def get_workspace_service() -> WorkspaceService:
    """Return the singleton workspace service for the process."""

    global _service
    if _service is None:
        _service = build_workspace_service(load_settings())
    return _service


def reset_workspace_state() -> None:
    """Reset the in-memory store (used in tests)."""

    if _service is not None:
        _service.reset()
