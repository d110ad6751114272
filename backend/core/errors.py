"""Classified failures raised by the generation pipeline."""
from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"


class GenerationError(RuntimeError):
    """Base error carrying the classification assigned at the adapter boundary."""

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        status_code: int | None = None,
        raw: Any = None,
    ) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.status_code = status_code
        self.raw = raw

    @property
    def retryable(self) -> bool:
        return self.kind is not ErrorKind.FATAL


class RateLimitedError(GenerationError):
    kind = ErrorKind.RATE_LIMITED


class TransientError(GenerationError):
    kind = ErrorKind.TRANSIENT


class MissingCredentialError(GenerationError):
    """Raised before any network attempt when no API key is configured."""

    def __init__(self, message: str = "GEMINI_API_KEY is not set; generation is disabled.") -> None:
        super().__init__(message)


class ParseFailureError(GenerationError):
    """The backend answered but the body held no well-formed structured data."""


class NoContentProducedError(GenerationError):
    """An image call completed without returning any image bytes."""


class ContentRejectedError(GenerationError):
    """The backend refused to process the prompt or the supplied image."""


class WorkspaceBusyError(RuntimeError):
    """A primary request is already in flight for the workspace."""


class InvalidRequestError(ValueError):
    """The submission cannot be handled by the requested workspace."""


_MESSAGES: dict[str, dict[str, str]] = {
    "ar": {
        "rate_limited": "يرجى المحاولة بعد قليل.",
        "missing_credential": "خطأ: مفتاح API مفقود. تأكد من إعداد متغيرات البيئة بشكل صحيح.",
        "generic": "حدث خطأ: {detail}...",
        "banner": "تنبيه: مفتاح API غير متصل. يرجى مراجعة إعدادات الخادم.",
    },
    "en": {
        "rate_limited": "The service is busy, please try again shortly.",
        "missing_credential": "Error: the API key is missing. Check the environment configuration.",
        "generic": "An error occurred: {detail}...",
        "banner": "Warning: no API key is configured. Generation is disabled.",
    },
}


def _messages(language: str) -> dict[str, str]:
    return _MESSAGES.get(language, _MESSAGES["ar"])


def describe_failure(exc: BaseException, language: str = "ar", limit: int = 100) -> str:
    """Return the single user-facing status line for a failed operation."""

    messages = _messages(language)
    if isinstance(exc, MissingCredentialError):
        return messages["missing_credential"]
    if isinstance(exc, GenerationError) and exc.kind is ErrorKind.RATE_LIMITED:
        return messages["rate_limited"]
    detail = str(exc) or exc.__class__.__name__
    return messages["generic"].format(detail=detail[:limit])


def credential_banner(language: str = "ar") -> str:
    return _messages(language)["banner"]


__all__ = [
    "ContentRejectedError",
    "ErrorKind",
    "GenerationError",
    "InvalidRequestError",
    "MissingCredentialError",
    "NoContentProducedError",
    "ParseFailureError",
    "RateLimitedError",
    "TransientError",
    "WorkspaceBusyError",
    "credential_banner",
    "describe_failure",
]
