"""Application services."""

from .generation import GenerationService
from .service import (
    build_workspace_service,
    configure_workspace_service,
    get_workspace_service,
    reset_workspace_state,
)
from .workspaces import WorkspaceService

__all__ = [
    "GenerationService",
    "WorkspaceService",
    "build_workspace_service",
    "configure_workspace_service",
    "get_workspace_service",
    "reset_workspace_state",
]
