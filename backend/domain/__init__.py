"""Domain layer definitions."""

from .workspaces import (
    ChatLogEntry,
    GenerationRequest,
    ImageSubtype,
    ItemStatus,
    WorkspaceItem,
    WorkspaceKind,
    WorkspaceRecord,
)

__all__ = [
    "ChatLogEntry",
    "GenerationRequest",
    "ImageSubtype",
    "ItemStatus",
    "WorkspaceItem",
    "WorkspaceKind",
    "WorkspaceRecord",
]
