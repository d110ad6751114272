"""Integration with the Gemini ``generateContent`` HTTP API."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from backend.core.config import GenerationSettings
from backend.core.errors import (
    ContentRejectedError,
    ErrorKind,
    GenerationError,
    NoContentProducedError,
    ParseFailureError,
    RateLimitedError,
    TransientError,
)
from backend.core.parsing import parse_structured_text

from .backend import BackendRequest, StructuredReply

log = logging.getLogger(__name__)

_RATE_LIMIT_STATUSES = {"RESOURCE_EXHAUSTED"}
_TRANSIENT_STATUSES = {"UNAVAILABLE", "DEADLINE_EXCEEDED"}
_BLOCKING_FINISH_REASONS = {
    "SAFETY",
    "PROHIBITED_CONTENT",
    "BLOCKLIST",
    "SPII",
    "IMAGE_SAFETY",
    "IMAGE_PROHIBITED_CONTENT",
}


def classify_http_error(response: httpx.Response) -> GenerationError:
    """Translate an HTTP error response into a classified :class:`GenerationError`."""

    status_code = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = None

    error = (body or {}).get("error") if isinstance(body, dict) else None
    error = error if isinstance(error, dict) else {}
    status = str(error.get("status") or "").upper()
    message = str(error.get("message") or response.text or f"HTTP {status_code}")[:500]
    detail = f"{status_code} {status or response.reason_phrase}: {message}"

    if status_code == 429 or status in _RATE_LIMIT_STATUSES:
        return RateLimitedError(detail, status_code=status_code, raw=body)
    if status_code in (503, 504) or status in _TRANSIENT_STATUSES:
        return TransientError(detail, status_code=status_code, raw=body)
    return GenerationError(detail, kind=ErrorKind.FATAL, status_code=status_code, raw=body)


class GeminiAdapter:
    """Issues one request per call; retries and fallback live above this layer."""

    def __init__(
        self,
        settings: GenerationSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_base = settings.api_base.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=settings.timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _url(self, model: str) -> str:
        return f"{self._api_base}/models/{model}:generateContent"

    @staticmethod
    def _first_candidate(body: dict[str, Any]) -> dict[str, Any]:
        candidates = body.get("candidates") or []
        if candidates and isinstance(candidates[0], dict):
            return candidates[0]
        return {}

    @classmethod
    def _parts(cls, body: dict[str, Any]) -> list[dict[str, Any]]:
        content = cls._first_candidate(body).get("content") or {}
        parts = content.get("parts") or []
        return [part for part in parts if isinstance(part, dict)]

    @classmethod
    def _collect_text(cls, body: dict[str, Any]) -> str:
        return "".join(
            str(part["text"]) for part in cls._parts(body) if part.get("text") and not part.get("thought")
        )

    @classmethod
    def _collect_sources(cls, body: dict[str, Any]) -> list[dict[str, str]]:
        metadata = cls._first_candidate(body).get("groundingMetadata") or {}
        sources: list[dict[str, str]] = []
        for chunk in metadata.get("groundingChunks") or []:
            web = chunk.get("web") if isinstance(chunk, dict) else None
            if isinstance(web, dict) and web.get("uri"):
                sources.append({"uri": str(web["uri"]), "title": str(web.get("title") or "")})
        return sources

    @classmethod
    def _check_rejection(cls, body: dict[str, Any]) -> None:
        feedback = body.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise ContentRejectedError(f"request blocked: {feedback['blockReason']}", raw=body)
        finish_reason = str(cls._first_candidate(body).get("finishReason") or "")
        if finish_reason in _BLOCKING_FINISH_REASONS and not cls._parts(body):
            raise ContentRejectedError(f"response withheld: {finish_reason}", raw=body)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def call(self, model: str, credential: str, request: BackendRequest) -> dict[str, Any]:
        """Send one request and return the decoded JSON body."""

        try:
            response = await self._client.post(
                self._url(model),
                headers={"x-goog-api-key": credential},
                json=request.to_body(),
            )
        except httpx.TransportError as exc:
            raise TransientError(f"network failure calling {model}: {exc!r}") from exc

        if response.is_error:
            raise classify_http_error(response)

        try:
            body = response.json()
        except ValueError as exc:
            raise ParseFailureError(f"{model} returned a non-JSON body", raw=response.text) from exc
        if not isinstance(body, dict):
            raise ParseFailureError(f"{model} returned an unexpected body", raw=body)

        self._check_rejection(body)
        return body

    async def call_structured(
        self,
        model: str,
        credential: str,
        request: BackendRequest,
        *,
        strict: bool = True,
    ) -> StructuredReply:
        body = await self.call(model, credential, request)
        text = self._collect_text(body)
        sources = self._collect_sources(body)
        try:
            data = parse_structured_text(text)
        except ParseFailureError:
            if strict:
                raise
            log.warning("%s reply could not be parsed as JSON", model)
            data = None
        return StructuredReply(data=data, text=text, sources=sources)

    async def call_image(self, model: str, credential: str, request: BackendRequest) -> str:
        body = await self.call(model, credential, request)
        for part in self._parts(body):
            inline = part.get("inlineData") or part.get("inline_data")
            if isinstance(inline, dict) and inline.get("data"):
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return f"data:{mime_type};base64,{inline['data']}"
        raise NoContentProducedError(f"{model} returned no image data")

    async def aclose(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            await self._client.aclose()


__all__ = ["GeminiAdapter", "classify_http_error"]
