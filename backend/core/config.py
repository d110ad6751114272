"""Process-wide settings for the generation backend.

Settings are resolved once at start-up by :func:`load_settings` and handed to
every component that needs them; nothing else reads the environment.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TEXT_MODELS = ("gemini-2.5-flash", "gemini-3-flash-preview")
DEFAULT_IMAGE_MODELS = ("gemini-2.5-flash-image", "gemini-3-pro-image-preview")


class GenerationSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    api_key: str | None = Field(default=None, repr=False)
    api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 60.0
    text_models: tuple[str, ...] = DEFAULT_TEXT_MODELS
    image_models: tuple[str, ...] = DEFAULT_IMAGE_MODELS

    rate_limit_backoff: float = 8.0
    transient_backoff: float = 2.0
    backoff_jitter: float = 1.0
    quota_fallback_cooldown: float = 8.0
    fallback_cooldown: float = 1.0
    batch_cooldown: float = 6.0

    text_attempts: int = 3
    image_attempts: int = 2
    status_limit: int = 100

    @field_validator("text_models", "image_models")
    @classmethod
    def validate_models(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("at least one candidate model is required")
        return v

    @property
    def credential(self) -> "CredentialState":
        return CredentialState.from_key(self.api_key)


@dataclass(frozen=True)
class CredentialState:
    """Presence of the backend credential, fixed for the life of the process."""

    key: str | None

    @classmethod
    def from_key(cls, value: str | None) -> "CredentialState":
        if value is None:
            return cls(None)
        cleaned = value.strip()
        if not cleaned or cleaned == "undefined":
            return cls(None)
        return cls(cleaned)

    @property
    def present(self) -> bool:
        return self.key is not None

    def __repr__(self) -> str:
        return f"CredentialState(present={self.present})"


def _split_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_settings(environ: Mapping[str, str] | None = None) -> GenerationSettings:
    env = os.environ if environ is None else environ

    values: dict[str, object] = {
        "api_key": env.get("GEMINI_API_KEY") or env.get("API_KEY"),
    }
    if env.get("GEMINI_API_BASE"):
        values["api_base"] = env["GEMINI_API_BASE"].rstrip("/")
    if env.get("GEMINI_TIMEOUT"):
        values["timeout"] = float(env["GEMINI_TIMEOUT"])
    text_models = _split_list(env.get("GEMINI_TEXT_MODELS"))
    if text_models:
        values["text_models"] = text_models
    image_models = _split_list(env.get("GEMINI_IMAGE_MODELS"))
    if image_models:
        values["image_models"] = image_models
    return GenerationSettings(**values)


__all__ = ["CredentialState", "GenerationSettings", "load_settings"]
