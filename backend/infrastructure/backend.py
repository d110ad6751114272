"""Request/response contract with the generative backend.

The pipeline only depends on :class:`GenerativeBackend`; the Gemini adapter is
the production implementation and tests substitute it through
``httpx.MockTransport`` or a hand-written fake.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class BackendRequest:
    """One generateContent call: content parts plus generation options."""

    parts: tuple[dict[str, Any], ...]
    system_instruction: str | None = None
    response_mime_type: str | None = None
    response_schema: dict[str, Any] | None = None
    use_search: bool = False
    image_config: dict[str, Any] | None = None

    @classmethod
    def text(cls, prompt: str, **options: Any) -> "BackendRequest":
        return cls(parts=({"text": prompt},), **options)

    @classmethod
    def with_image(cls, data_url: str, prompt: str, **options: Any) -> "BackendRequest":
        mime_type, data = split_data_url(data_url)
        image_part = {"inlineData": {"mimeType": mime_type, "data": data}}
        return cls(parts=(image_part, {"text": prompt}), **options)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"contents": [{"parts": list(self.parts)}]}
        if self.system_instruction:
            body["systemInstruction"] = {"parts": [{"text": self.system_instruction}]}

        generation_config: dict[str, Any] = {}
        if self.response_mime_type:
            generation_config["responseMimeType"] = self.response_mime_type
        if self.response_schema:
            generation_config["responseSchema"] = self.response_schema
        if self.image_config:
            generation_config["imageConfig"] = self.image_config
        if generation_config:
            body["generationConfig"] = generation_config

        if self.use_search:
            body["tools"] = [{"googleSearch": {}}]
        return body


@dataclass(frozen=True, slots=True)
class StructuredReply:
    data: dict[str, Any] | None
    text: str
    sources: list[dict[str, str]] = field(default_factory=list)


class GenerativeBackend(Protocol):
    """Contract for backend adapters."""

    async def call_structured(
        self,
        model: str,
        credential: str,
        request: BackendRequest,
        *,
        strict: bool = True,
    ) -> StructuredReply:
        """Return the parsed JSON reply; ``strict=False`` keeps unparsable text instead of raising."""

    async def call_image(self, model: str, credential: str, request: BackendRequest) -> str:
        """Return the first produced image as a ``data:`` URL."""


def split_data_url(value: str) -> tuple[str, str]:
    """Return ``(mime_type, base64_data)`` for a data URL or a bare base64 string."""

    if value.startswith("data:") and "," in value:
        header, data = value.split(",", 1)
        mime_type = header[5:].split(";", 1)[0] or "image/png"
        return mime_type, data
    return "image/png", value


def to_data_url(payload: bytes, mime_type: str = "image/png") -> str:
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


__all__ = [
    "BackendRequest",
    "GenerativeBackend",
    "StructuredReply",
    "split_data_url",
    "to_data_url",
]
