"""Infrastructure layer exports."""

from .backend import BackendRequest, GenerativeBackend, StructuredReply, split_data_url, to_data_url
from .gemini import GeminiAdapter, classify_http_error
from .workspaces import InMemoryWorkspaceRepository, WorkspaceRepository, serialise_chat, serialise_item

__all__ = [
    "BackendRequest",
    "GeminiAdapter",
    "GenerativeBackend",
    "InMemoryWorkspaceRepository",
    "StructuredReply",
    "WorkspaceRepository",
    "classify_http_error",
    "serialise_chat",
    "serialise_item",
    "split_data_url",
    "to_data_url",
]
