"""Domain entities for the content workspaces."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class WorkspaceKind(str, Enum):
    SIMULATION = "simulation"
    PRACTICAL = "practical"
    GALLERY = "gallery"
    QUIZ = "quiz"


class ImageSubtype(str, Enum):
    CLINICAL = "CLINICAL"
    RADIOLOGY = "RADIOLOGY"
    EXPLODED = "EXPLODED"


class ItemStatus(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """One user submission; consumed once by the workspace flow."""

    workspace: WorkspaceKind
    topic: str = ""
    language: str = "ar"
    count: int = 5
    difficulty: str = "Medium"
    image: str | None = None
    image_subtype: ImageSubtype = ImageSubtype.CLINICAL


@dataclass(frozen=True, slots=True)
class WorkspaceItem:
    """A dependent sub-request (usually an image) derived from a primary result."""

    key: str
    status: ItemStatus = ItemStatus.PENDING
    prompt: str | None = None
    subtype: ImageSubtype | None = None
    image_url: str | None = None
    source: dict[str, Any] | None = None
    error: str | None = None


@dataclass(slots=True)
class WorkspaceRecord:
    """Mutable state owned by a single workspace."""

    kind: WorkspaceKind
    in_flight: bool = False
    generation: int = 0
    primary_result: dict[str, Any] | None = None
    items: dict[str, WorkspaceItem] = field(default_factory=dict)
    attachment: str | None = None
    status_message: str | None = None
    updated_at: str | None = None

    def touch(self) -> None:
        self.updated_at = _now()


@dataclass(frozen=True, slots=True)
class ChatLogEntry:
    role: str
    content: str
    workspace: WorkspaceKind | None = None
    visual: str | None = None
    created_at: str = field(default_factory=_now)
