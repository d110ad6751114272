import json
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.config import GenerationSettings
from backend.infrastructure import BackendRequest, StructuredReply


class FakeClock:
    """Stands in for ``asyncio.sleep``: records waits and advances virtual time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def prompt_text(request: BackendRequest) -> str:
    return " ".join(str(part.get("text", "")) for part in request.parts)


Handler = Callable[[str, BackendRequest], Any]


class FakeBackend:
    """Scripted backend; handlers return a value or raise a classified error."""

    def __init__(
        self,
        *,
        structured: Handler | None = None,
        image: Handler | None = None,
        clock: FakeClock | None = None,
    ) -> None:
        self._structured = structured
        self._image = image
        self._clock = clock
        self.calls: list[dict[str, Any]] = []

    def _record(self, kind: str, model: str, request: BackendRequest) -> None:
        self.calls.append(
            {
                "kind": kind,
                "model": model,
                "prompt": prompt_text(request),
                "at": self._clock.now if self._clock else None,
            }
        )

    async def call_structured(
        self,
        model: str,
        credential: str,
        request: BackendRequest,
        *,
        strict: bool = True,
    ) -> StructuredReply:
        self._record("structured", model, request)
        assert self._structured is not None, "no structured handler configured"
        data = self._structured(model, request)
        if isinstance(data, StructuredReply):
            return data
        return StructuredReply(data=data, text=json.dumps(data))

    async def call_image(self, model: str, credential: str, request: BackendRequest) -> str:
        self._record("image", model, request)
        assert self._image is not None, "no image handler configured"
        return self._image(model, request)

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call["kind"] == kind)


def text_reply(payload: Any, *, sources: list[dict[str, str]] | None = None) -> dict[str, Any]:
    text = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    candidate: dict[str, Any] = {"content": {"parts": [{"text": text}], "role": "model"}, "finishReason": "STOP"}
    if sources:
        candidate["groundingMetadata"] = {"groundingChunks": [{"web": source} for source in sources]}
    return {"candidates": [candidate]}


def image_reply(data: str = "aW1hZ2U=", mime_type: str = "image/png") -> dict[str, Any]:
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "Here is your image"},
                        {"inlineData": {"mimeType": mime_type, "data": data}},
                    ]
                },
                "finishReason": "STOP",
            }
        ]
    }


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> GenerationSettings:
    return GenerationSettings(
        api_key="test-key",
        api_base="https://gemini.test/v1beta",
        text_models=("text-a", "text-b"),
        image_models=("image-a", "image-b"),
    )
