from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from backend.core.config import GenerationSettings
from backend.core.retry import Sleep
from backend.domain import ItemStatus, WorkspaceKind
from backend.infrastructure import WorkspaceRepository

log = logging.getLogger(__name__)

Producer = Callable[[], Awaitable[str | None]]


@dataclass
class BatchStep:
    key: str
    produce: Producer


@dataclass
class BatchJob:
    workspace: WorkspaceKind
    generation: int
    steps: list[BatchStep] = field(default_factory=list)


@dataclass
class BatchReport:
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    superseded: bool = False


class BatchRunner:
    """Runs the dependent image requests of one primary result, one at a time."""

    def __init__(
        self,
        repository: WorkspaceRepository,
        settings: GenerationSettings,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._settings = settings
        self._sleep = sleep
        self._tasks: dict[WorkspaceKind, asyncio.Task[BatchReport]] = {}

    def _owns(self, job: BatchJob) -> bool:
        return self._repository.is_current(job.workspace, job.generation)

    def _settle(self, job: BatchJob, key: str, report: BatchReport, **changes) -> bool:
        """Record a step outcome; ``False`` once the job no longer owns the workspace."""

        if self._repository.update_item(job.workspace, job.generation, key, **changes):
            return True
        if self._owns(job):
            # already terminal; nothing to record
            return True
        log.info("%s batch generation %d superseded; result for %s dropped", job.workspace.value, job.generation, key)
        report.superseded = True
        return False

    async def run(self, job: BatchJob) -> BatchReport:
        report = BatchReport()
        for index, step in enumerate(job.steps):
            if not self._owns(job):
                log.info("%s batch generation %d superseded; stopping", job.workspace.value, job.generation)
                report.superseded = True
                break

            self._repository.update_item(job.workspace, job.generation, step.key, status=ItemStatus.LOADING)
            try:
                image = await step.produce()
            except Exception as exc:  # noqa: BLE001 - item failures stay inside the batch
                log.warning("%s item %s failed: %s", job.workspace.value, step.key, exc)
                error = str(exc)[: self._settings.status_limit]
                if not self._settle(job, step.key, report, status=ItemStatus.FAILED, error=error):
                    break
                report.failed.append(step.key)
                continue

            if image is None:
                log.warning("%s item %s produced no image", job.workspace.value, step.key)
                if not self._settle(job, step.key, report, status=ItemStatus.FAILED):
                    break
                report.failed.append(step.key)
                continue

            if not self._settle(job, step.key, report, status=ItemStatus.COMPLETED, image_url=image):
                break
            report.completed.append(step.key)

            if index < len(job.steps) - 1:
                await self._sleep(self._settings.batch_cooldown)

        return report

    def schedule(self, job: BatchJob, on_done: Callable[[], None] | None = None) -> asyncio.Task[BatchReport]:
        """Start ``job`` detached from the caller; ``on_done`` runs however the batch ends.

        A superseded batch for the same workspace is allowed to wind down first
        so that its in-progress request never overlaps with the new batch.
        """

        previous = self._tasks.get(job.workspace)

        async def runner() -> BatchReport:
            try:
                if previous is not None and not previous.done():
                    await asyncio.gather(previous, return_exceptions=True)
                return await self.run(job)
            finally:
                if on_done is not None:
                    on_done()

        task = asyncio.create_task(runner(), name=f"batch-{job.workspace.value}-{job.generation}")
        self._tasks[job.workspace] = task

        def _forget(finished: asyncio.Task[BatchReport]) -> None:
            if self._tasks.get(job.workspace) is finished:
                del self._tasks[job.workspace]

        task.add_done_callback(_forget)
        return task

    async def join(self, workspace: WorkspaceKind | None = None) -> None:
        if workspace is None:
            tasks = list(self._tasks.values())
        else:
            task = self._tasks.get(workspace)
            tasks = [task] if task is not None else []
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


__all__ = ["BatchJob", "BatchReport", "BatchRunner", "BatchStep"]
