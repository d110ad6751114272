"""Application service layer for workspace request flows."""
from __future__ import annotations

import logging
from dataclasses import replace
from functools import partial
from typing import Any

from backend.core.config import CredentialState, GenerationSettings
from backend.core.errors import (
    InvalidRequestError,
    MissingCredentialError,
    WorkspaceBusyError,
    credential_banner,
    describe_failure,
)
from backend.domain import (
    ChatLogEntry,
    GenerationRequest,
    ImageSubtype,
    ItemStatus,
    WorkspaceItem,
    WorkspaceKind,
)
from backend.infrastructure import WorkspaceRepository, serialise_chat
from backend.workers.batch import BatchJob, BatchRunner, BatchStep

from .generation import GenerationService

log = logging.getLogger(__name__)

DIFFICULTIES = ("Easy", "Medium", "Hard", "Intellectual")
LANGUAGES = ("ar", "en")
MAX_QUESTION_COUNT = 10

SIMULATION_IMAGES: tuple[tuple[str, ImageSubtype, str], ...] = (
    ("clinical", ImageSubtype.CLINICAL, "image_prompt"),
    ("radiology", ImageSubtype.RADIOLOGY, "radiology_prompt"),
    ("exploded", ImageSubtype.EXPLODED, "exploded_prompt"),
)

SUMMARIES: dict[str, dict[str, str]] = {
    "ar": {
        "simulation": 'تم إنشاء المحاكاة السريرية لـ: "{topic}"',
        "practical": 'تم استدعاء "المعلم الأسطوري" لشرح: "{topic}"',
        "gallery": 'جاري البحث البصري وتوليد الصور لـ: "{topic}"...',
        "quiz": 'تم إنشاء بنك أسئلة ({count} لكل نوع) للموضوع: "{topic}" باللغة {language_name} - المستوى: {difficulty}.',
        "analysis": "**تقرير الجراح الاستشاري:**\n\n{analysis}\n\n**الامتثال للمعايير:** {compliance}",
        "analysis_request": "تحليل صورة سريرية",
        "compliant": "مطابق",
        "non_compliant": "غير مطابق",
        "language_ar": "العربية",
        "language_en": "الإنجليزية",
    },
    "en": {
        "simulation": 'Clinical simulation created for: "{topic}"',
        "practical": 'The mentor protocol is ready for: "{topic}"',
        "gallery": 'Searching and generating images for: "{topic}"...',
        "quiz": 'Question bank created ({count} per type) for: "{topic}" in {language_name} - level: {difficulty}.',
        "analysis": "**Consultant report:**\n\n{analysis}\n\n**Standards compliance:** {compliance}",
        "analysis_request": "Clinical image analysis",
        "compliant": "compliant",
        "non_compliant": "not compliant",
        "language_ar": "Arabic",
        "language_en": "English",
    },
}

DIFFICULTY_LABELS = {
    "ar": {"Intellectual": "الفكري (Critical Thinking)", "Hard": "الصعب", "Medium": "المتوسط", "Easy": "السهل"},
    "en": {"Intellectual": "critical thinking", "Hard": "hard", "Medium": "medium", "Easy": "easy"},
}


class WorkspaceService:
    """Coordinates the primary request and background images of each workspace."""

    def __init__(
        self,
        repository: WorkspaceRepository,
        tasks: GenerationService,
        runner: BatchRunner,
        settings: GenerationSettings,
        credential: CredentialState,
    ) -> None:
        self._repository = repository
        self._tasks = tasks
        self._runner = runner
        self._settings = settings
        self._credential = credential

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def snapshot(self, kind: WorkspaceKind) -> dict[str, object]:
        return self._repository.get_workspace_overview(kind)

    def list_workspaces(self) -> list[dict[str, object]]:
        return self._repository.list_workspaces()

    def chat_log(self) -> list[dict[str, object]]:
        return [serialise_chat(entry) for entry in self._repository.list_chat()]

    def health(self, language: str = "ar") -> dict[str, object]:
        present = self._credential.present
        return {
            "credential": present,
            "banner": None if present else credential_banner(language),
            "text_models": list(self._settings.text_models),
            "image_models": list(self._settings.image_models),
        }

    async def join(self, kind: WorkspaceKind | None = None) -> None:
        """Wait for background batches (tests and shutdown)."""

        await self._runner.join(kind)

    # ------------------------------------------------------------------
    # submissions
    # ------------------------------------------------------------------
    def _validate(self, request: GenerationRequest) -> None:
        if request.image and request.workspace is not WorkspaceKind.SIMULATION:
            raise InvalidRequestError("image analysis is only available in the simulation workspace")
        if not request.image and not request.topic.strip() and request.workspace is not WorkspaceKind.GALLERY:
            raise InvalidRequestError("topic is required")
        if request.language not in LANGUAGES:
            raise InvalidRequestError(f"language must be one of {', '.join(LANGUAGES)}")
        if request.difficulty not in DIFFICULTIES:
            raise InvalidRequestError(f"difficulty must be one of {', '.join(DIFFICULTIES)}")

    def describe(self, exc: BaseException, language: str = "ar") -> str:
        """The user-facing status line for ``exc``, truncated to the configured limit."""

        return describe_failure(exc, language, self._settings.status_limit)

    def _summary(self, lang: str, key: str, **values: Any) -> str:
        return SUMMARIES.get(lang, SUMMARIES["ar"])[key].format(**values)

    def _say(self, request: GenerationRequest, content: str) -> None:
        self._repository.append_chat(ChatLogEntry(role="assistant", content=content, workspace=request.workspace))

    async def submit(self, request: GenerationRequest) -> dict[str, object]:
        """Run the primary call for ``request`` and publish its result.

        Dependent image requests continue in the background after this returns.
        """

        # question count is clamped, not rejected
        request = replace(request, count=max(1, min(MAX_QUESTION_COUNT, request.count)))
        kind = request.workspace
        if not self._credential.present:
            error = MissingCredentialError()
            self._repository.set_status_message(kind, self.describe(error, request.language))
            raise error
        self._validate(request)
        if not self._repository.try_begin(kind):
            raise WorkspaceBusyError(f"{kind.value} already has a request in flight")

        user_content = request.topic or (self._summary(request.language, "analysis_request") if request.image else "")
        self._repository.append_chat(
            ChatLogEntry(role="user", content=user_content, workspace=kind, visual=request.image)
        )

        release_now = True
        try:
            if kind is WorkspaceKind.SIMULATION and request.image:
                await self._run_analysis(request)
            elif kind is WorkspaceKind.SIMULATION:
                release_now = not await self._run_simulation(request)
            elif kind is WorkspaceKind.PRACTICAL:
                await self._run_practical(request)
            elif kind is WorkspaceKind.GALLERY:
                await self._run_gallery(request)
            else:
                await self._run_quiz(request)
        except Exception as exc:
            log.warning("%s request failed: %s", kind.value, exc)
            self._repository.set_status_message(kind, self.describe(exc, request.language))
            self._repository.release(kind)
            raise
        if release_now:
            self._repository.release(kind)
        return self.snapshot(kind)

    # ------------------------------------------------------------------
    # per-workspace flows
    # ------------------------------------------------------------------
    def _schedule(self, kind: WorkspaceKind, generation: int, items: list[WorkspaceItem], *, hold: bool = False) -> bool:
        steps = [
            BatchStep(key=item.key, produce=partial(self._tasks.image, item.prompt, item.subtype or ImageSubtype.CLINICAL))
            for item in items
            if item.prompt and not item.status.terminal
        ]
        if not steps:
            return False
        on_done = partial(self._repository.release, kind) if hold else None
        self._runner.schedule(BatchJob(workspace=kind, generation=generation, steps=steps), on_done=on_done)
        return hold

    # Each flow builds everything it reports before publishing, so nothing
    # after publish_primary can fail the request.
    async def _run_simulation(self, request: GenerationRequest) -> bool:
        scenario = await self._tasks.simulation(request.topic)
        items = [
            WorkspaceItem(
                key=key,
                status=ItemStatus.PENDING,
                prompt=getattr(scenario, field) or request.topic,
                subtype=subtype,
            )
            for key, subtype, field in SIMULATION_IMAGES
        ]
        summary = self._summary(request.language, "simulation", topic=request.topic)
        generation = self._repository.publish_primary(WorkspaceKind.SIMULATION, scenario.model_dump(), items)
        self._say(request, summary)
        # the simulation workspace stays in flight until its images settle
        return self._schedule(WorkspaceKind.SIMULATION, generation, items, hold=True)

    async def _run_analysis(self, request: GenerationRequest) -> None:
        assert request.image is not None
        analysis = await self._tasks.analyze_image(request.image)
        if analysis.is_high_quality:
            verdict_key = "compliant" if analysis.ada_compliance.compliant else "non_compliant"
            body = analysis.detailed_clinical_analysis
        else:
            verdict_key = "non_compliant"
            body = analysis.rejection_reason or analysis.detailed_clinical_analysis
        summary = self._summary(
            request.language,
            "analysis",
            analysis=body,
            compliance=self._summary(request.language, verdict_key),
        )
        self._repository.publish_primary(
            WorkspaceKind.SIMULATION,
            {"analysis_result": analysis.model_dump()},
            attachment=request.image,
        )
        self._say(request, summary)

    async def _run_practical(self, request: GenerationRequest) -> None:
        protocol = await self._tasks.practical(request.topic)
        items = [
            WorkspaceItem(
                key=f"step-{index}",
                status=ItemStatus.PENDING if step.visual_prompt else ItemStatus.COMPLETED,
                prompt=step.visual_prompt,
                subtype=ImageSubtype.CLINICAL,
            )
            for index, step in enumerate(protocol.practical_protocol)
        ]
        summary = self._summary(request.language, "practical", topic=request.topic)
        generation = self._repository.publish_primary(WorkspaceKind.PRACTICAL, protocol.model_dump(), items)
        self._say(request, summary)
        self._schedule(WorkspaceKind.PRACTICAL, generation, items)

    def _gallery_topic(self, request: GenerationRequest) -> str:
        if request.topic.strip():
            return request.topic
        simulation = self._repository.get_record(WorkspaceKind.SIMULATION)
        return "Dental procedures" if simulation.primary_result else "Dentistry"

    async def _run_gallery(self, request: GenerationRequest) -> None:
        topic = self._gallery_topic(request)
        plan = await self._tasks.research(topic)
        items = [
            WorkspaceItem(
                key=f"image-{index}",
                status=ItemStatus.LOADING,
                prompt=prompt,
                subtype=request.image_subtype,
                source=plan.sources[index].model_dump() if index < len(plan.sources) else None,
            )
            for index, prompt in enumerate(plan.prompts)
        ]
        summary = self._summary(request.language, "gallery", topic=topic)
        generation = self._repository.publish_primary(WorkspaceKind.GALLERY, plan.model_dump(), items)
        self._say(request, summary)
        self._schedule(WorkspaceKind.GALLERY, generation, items)

    async def _run_quiz(self, request: GenerationRequest) -> None:
        bank = await self._tasks.quiz(
            request.topic,
            language=request.language,
            count=request.count,
            difficulty=request.difficulty,
        )
        labels = DIFFICULTY_LABELS.get(request.language, DIFFICULTY_LABELS["ar"])
        summary = self._summary(
            request.language,
            "quiz",
            count=request.count,
            topic=request.topic,
            language_name=self._summary(request.language, f"language_{request.language}"),
            difficulty=labels[request.difficulty],
        )
        self._repository.publish_primary(WorkspaceKind.QUIZ, bank.model_dump())
        self._say(request, summary)

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._repository.reset()


__all__ = ["WorkspaceService"]
