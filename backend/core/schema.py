from __future__ import annotations

import re
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _leading_number(value: Any) -> Any:
    # "45%", "88 bpm" and "98" all arrive from the model; anything without digits is dropped
    if isinstance(value, str):
        match = _NUMBER.search(value)
        return float(match.group()) if match else None
    return value


def _as_text_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return value


Number = Annotated[float | None, BeforeValidator(_leading_number)]
TextList = Annotated[list[str], BeforeValidator(_as_text_list)]


class Payload(BaseModel):
    """Base for structured replies: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class Hotspot(Payload):
    x: Number = 0
    y: Number = 0
    label: str = ""
    description: str = ""
    diagnosis: str = ""
    indications: str = ""
    classification: str = ""
    treatment_plan: str = ""
    clinical_pearl: str | None = None
    common_mistake: str | None = None


class Vitals(Payload):
    heart_rate: Number = None
    blood_pressure: str | None = None
    oxygen_saturation: Number = None


class InstrumentSpec(Payload):
    name: str = ""
    iso_number: str | None = None
    use_case: str | None = None


class SimulationScenario(Payload):
    theory_summary: str = ""
    risk_level: str | None = None
    hotspots: list[Hotspot] = Field(default_factory=list)
    vitals: Vitals | None = None
    image_prompt: str | None = None
    radiology_prompt: str | None = None
    exploded_prompt: str | None = None
    differential_diagnosis: TextList = Field(default_factory=list)
    required_instruments: list[InstrumentSpec] = Field(default_factory=list)


class PracticalStep(Payload):
    id: str = ""
    title: str = ""
    original_text: str = ""
    medical_translation: str = ""
    professor_comment: str = ""
    memory_aid: str = ""
    visual_prompt: str | None = None


class PracticalProtocol(Payload):
    practical_protocol: list[PracticalStep] = Field(default_factory=list)


class QuizItem(Payload):
    id: str = ""
    question: str = ""
    answer: str = ""
    difficulty: str = "Medium"
    key_points: TextList = Field(default_factory=list)


class MCQItem(Payload):
    id: str = ""
    question: str = ""
    options: TextList = Field(default_factory=list)
    correct_answer: str = ""
    explanation: str = ""
    difficulty: str = "Medium"


class QuizBank(Payload):
    essay_questions: list[QuizItem] = Field(default_factory=list)
    short_answer_questions: list[QuizItem] = Field(default_factory=list)
    mcq_questions: list[MCQItem] = Field(default_factory=list)


class GroundingSource(Payload):
    uri: str
    title: str = ""


class GalleryPlan(Payload):
    prompts: list[str]
    sources: list[GroundingSource] = Field(default_factory=list)


class BoundingBox(Payload):
    ymin: Number = 0
    xmin: Number = 0
    ymax: Number = 0
    xmax: Number = 0


class DangerZone(Payload):
    name: str = ""
    risk_level: str = "MODERATE"
    description: str = ""
    box: BoundingBox = Field(default_factory=BoundingBox)


class Compliance(Payload):
    compliant: bool = False
    notes: str = ""


class ImageAnalysisResult(Payload):
    is_high_quality: bool
    rejection_reason: str | None = None
    detailed_clinical_analysis: str = ""
    landmarks: TextList = Field(default_factory=list)
    danger_zones: list[DangerZone] = Field(default_factory=list)
    ada_compliance: Compliance = Field(default_factory=Compliance)


# Response schema sent with image-analysis requests (Gemini OpenAPI subset).
IMAGE_ANALYSIS_SCHEMA: dict = {
    "type": "OBJECT",
    "properties": {
        "isHighQuality": {"type": "BOOLEAN"},
        "rejectionReason": {"type": "STRING"},
        "detailedClinicalAnalysis": {"type": "STRING"},
        "landmarks": {"type": "ARRAY", "items": {"type": "STRING"}},
        "dangerZones": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING"},
                    "riskLevel": {"type": "STRING", "enum": ["HIGH", "MODERATE", "LOW"]},
                    "description": {"type": "STRING"},
                    "box": {
                        "type": "OBJECT",
                        "properties": {
                            "ymin": {"type": "NUMBER"},
                            "xmin": {"type": "NUMBER"},
                            "ymax": {"type": "NUMBER"},
                            "xmax": {"type": "NUMBER"},
                        },
                    },
                },
            },
        },
        "adaCompliance": {
            "type": "OBJECT",
            "properties": {"compliant": {"type": "BOOLEAN"}, "notes": {"type": "STRING"}},
        },
    },
    "required": ["isHighQuality", "detailedClinicalAnalysis", "dangerZones"],
}
