"""Generation tasks: prompt + expected shape, run through fallback and retry."""
from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from pydantic import ValidationError

from backend.core.config import GenerationSettings
from backend.core.errors import ContentRejectedError, GenerationError, ParseFailureError
from backend.core.fallback import ModelFallback
from backend.core.schema import (
    IMAGE_ANALYSIS_SCHEMA,
    GalleryPlan,
    GroundingSource,
    ImageAnalysisResult,
    PracticalProtocol,
    QuizBank,
    SimulationScenario,
)
from backend.domain import ImageSubtype
from backend.infrastructure import BackendRequest, GenerativeBackend, StructuredReply

log = logging.getLogger(__name__)

T = TypeVar("T")

JSON_MIME = "application/json"

SIMULATION_SCHEMA = """
OUTPUT: JSON Object.
LANGUAGE: ARABIC (Scientific Medical Arabic).
Structure: {
  "theorySummary": "string", "riskLevel": "string",
  "hotspots": [{ "x": number, "y": number, "label": "string", "description": "string",
    "diagnosis": "string", "indications": "string", "classification": "string",
    "treatmentPlan": "string", "clinicalPearl": "string", "commonMistake": "string" }],
  "vitals": { "heartRate": number, "bloodPressure": "string", "oxygenSaturation": number },
  "imagePrompt": "string (English, photorealistic clinical view)",
  "radiologyPrompt": "string (English, X-ray)",
  "explodedPrompt": "string (English, 3D diagram)"
}"""

PRACTICAL_SCHEMA = """
OUTPUT: JSON Object.
Structure: {
  "practicalProtocol": [{
    "id": "string",
    "title": "string (section title)",
    "originalText": "string (the exact original English source text for this segment)",
    "medicalTranslation": "string (precise medical Arabic translation of the original text)",
    "professorComment": "string (deep explanation in Arabic, medium length)",
    "memoryAid": "string (a funny, creative mnemonic for the concept)",
    "visualPrompt": "string (English description of a clinical image for this exact step)"
  }]
}"""

QUIZ_SCHEMA = """
OUTPUT: JSON Object.
LANGUAGE: {language}.
Structure: {{
  "essayQuestions": [{{ "id": "string", "question": "string", "answer": "string", "difficulty": "{difficulty}", "keyPoints": ["string"] }}],
  "shortAnswerQuestions": [{{ "id": "string", "question": "string", "answer": "string", "difficulty": "{difficulty}" }}],
  "mcqQuestions": [{{ "id": "string", "question": "string", "options": ["string"], "correctAnswer": "string", "explanation": "string", "difficulty": "{difficulty}" }}]
}}"""

RESEARCH_SCHEMA = """
OUTPUT: JSON Object.
Structure: {
  "imagePrompts": ["string", "string", "string"],
  "searchQueries": ["string"]
}"""

IMAGE_TEMPLATES: dict[ImageSubtype, str] = {
    ImageSubtype.EXPLODED: "Clean 3D medical illustration, exploded view, dental anatomy: {prompt}. White background",
    ImageSubtype.RADIOLOGY: "Digital Dental X-Ray: {prompt}. Diagnostic grayscale",
    ImageSubtype.CLINICAL: "Dental education visual aid: {prompt}. High quality, photorealistic, clinical standard.",
}

LANGUAGE_NAMES = {"ar": "ARABIC", "en": "ENGLISH"}

GALLERY_SIZE = 3


def fallback_gallery_prompts(topic: str) -> list[str]:
    return [
        f"Dental clinical view of {topic}",
        f"Anatomical diagram of {topic}",
        f"X-ray of {topic}",
    ]


def image_config_for(model: str) -> dict[str, str]:
    config = {"aspectRatio": "16:9"}
    if "pro-image" in model:
        config["imageSize"] = "1K"
    return config


class GenerationService:
    """The task layer: one method per generation kind."""

    def __init__(
        self,
        backend: GenerativeBackend,
        fallback: ModelFallback,
        settings: GenerationSettings,
    ) -> None:
        self._backend = backend
        self._fallback = fallback
        self._settings = settings

    async def _structured(
        self,
        request: BackendRequest,
        shape: Callable[[StructuredReply], T],
        *,
        strict: bool = True,
    ) -> T:
        # shaping runs per model so a mismatched reply moves on to the next candidate
        async def operation(model: str, api_key: str, attempt: int) -> T:
            reply = await self._backend.call_structured(model, api_key, request, strict=strict)
            return shape(reply)

        return await self._fallback.run(
            operation,
            self._settings.text_models,
            max_attempts=self._settings.text_attempts,
        )

    @staticmethod
    def _validate(model_cls, data: dict | None, label: str):
        try:
            return model_cls.model_validate(data or {})
        except ValidationError as exc:
            raise ParseFailureError(f"{label} response did not match the expected shape: {exc.error_count()} errors", raw=data) from exc

    @classmethod
    def _shape(cls, model_cls, label: str) -> Callable[[StructuredReply], Any]:
        return lambda reply: cls._validate(model_cls, reply.data, label)

    # ------------------------------------------------------------------
    # text tasks
    # ------------------------------------------------------------------
    async def simulation(self, topic: str) -> SimulationScenario:
        request = BackendRequest.text(
            f'Topic: "{topic}". Create a dental clinical simulation scenario.\n\n{SIMULATION_SCHEMA}',
            system_instruction="You are a Clinical Dental Simulation Architect. Return valid JSON.",
            response_mime_type=JSON_MIME,
        )
        return await self._structured(request, self._shape(SimulationScenario, "simulation"))

    async def practical(self, topic: str) -> PracticalProtocol:
        request = BackendRequest.text(
            f'Topic/Text to Explain: "{topic}".\n\n{PRACTICAL_SCHEMA}',
            system_instruction="You are the 'Legendary Dental Mentor'. Output strictly valid JSON.",
            response_mime_type=JSON_MIME,
        )
        return await self._structured(request, self._shape(PracticalProtocol, "practical protocol"))

    async def quiz(
        self,
        topic: str,
        *,
        language: str = "ar",
        count: int = 5,
        difficulty: str = "Medium",
    ) -> QuizBank:
        schema = QUIZ_SCHEMA.format(language=LANGUAGE_NAMES.get(language, "ARABIC"), difficulty=difficulty)
        request = BackendRequest.text(
            f'Topic: "{topic}". Create an exam with {count} questions. Level: {difficulty}\n\n{schema}',
            system_instruction="You are a Dental School Professor. Create exam. JSON only.",
            response_mime_type=JSON_MIME,
        )

        def shape(reply: StructuredReply) -> QuizBank:
            data = dict(reply.data or {})
            for key in ("essayQuestions", "shortAnswerQuestions", "mcqQuestions"):
                if not isinstance(data.get(key), list):
                    data[key] = []
            return self._validate(QuizBank, data, "quiz")

        return await self._structured(request, shape)

    async def research(self, topic: str) -> GalleryPlan:
        """Return three image prompts and the search citations; never returns fewer prompts."""

        request = BackendRequest.text(
            f'Topic: "{topic}". Create {GALLERY_SIZE} distinct medical image prompts and use Google Search.\n\n{RESEARCH_SCHEMA}',
            use_search=True,
        )

        def shape(reply: StructuredReply) -> GalleryPlan:
            prompts: list[str] = []
            if reply.data is None:
                prompts = fallback_gallery_prompts(topic)
            else:
                raw_prompts = reply.data.get("imagePrompts")
                if isinstance(raw_prompts, list):
                    prompts = [str(item).strip() for item in raw_prompts if str(item or "").strip()]
            while len(prompts) < GALLERY_SIZE:
                prompts.append(f"Dental clinical view of {topic}")

            sources = [GroundingSource.model_validate(item) for item in reply.sources]
            return GalleryPlan(prompts=prompts[:GALLERY_SIZE], sources=sources)

        return await self._structured(request, shape, strict=False)

    # ------------------------------------------------------------------
    # image tasks
    # ------------------------------------------------------------------
    async def image(self, prompt: str, subtype: ImageSubtype = ImageSubtype.CLINICAL) -> str | None:
        """Return a data URL, or ``None`` when every model and retry is exhausted."""

        final_prompt = IMAGE_TEMPLATES[subtype].format(prompt=prompt)

        async def operation(model: str, api_key: str, attempt: int) -> str:
            request = BackendRequest.text(final_prompt, image_config=image_config_for(model))
            return await self._backend.call_image(model, api_key, request)

        try:
            return await self._fallback.run(
                operation,
                self._settings.image_models,
                max_attempts=self._settings.image_attempts,
            )
        except GenerationError as exc:
            log.warning("all image generation attempts failed for %s: %s", subtype.value, exc)
            return None

    async def analyze_image(self, data_url: str) -> ImageAnalysisResult:
        request = BackendRequest.with_image(
            data_url,
            "Perform high-precision dental analysis. Return strict JSON.",
            response_mime_type=JSON_MIME,
            response_schema=IMAGE_ANALYSIS_SCHEMA,
        )
        try:
            return await self._structured(request, self._shape(ImageAnalysisResult, "image analysis"))
        except ContentRejectedError as exc:
            log.info("image rejected by the backend: %s", exc)
            return ImageAnalysisResult(is_high_quality=False, rejection_reason=str(exc))


__all__ = ["GenerationService", "fallback_gallery_prompts", "image_config_for"]
