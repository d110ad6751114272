from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, HTTPException

from backend.application import WorkspaceService, get_workspace_service
from backend.core.errors import (
    ErrorKind,
    GenerationError,
    InvalidRequestError,
    MissingCredentialError,
    WorkspaceBusyError,
)
from backend.domain import GenerationRequest, ImageSubtype, WorkspaceKind

router = APIRouter(prefix="/workspaces", tags=["workspace"])


def resolve_workspace(kind: str) -> WorkspaceKind:
    try:
        return WorkspaceKind(kind)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail="workspace not found") from exc


def raise_for_failure(exc: Exception, service: WorkspaceService, language: str) -> NoReturn:
    """Map a service failure to the HTTP error carrying the user-facing status line."""

    if isinstance(exc, InvalidRequestError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(exc, WorkspaceBusyError):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    detail = service.describe(exc, language)
    if isinstance(exc, MissingCredentialError):
        raise HTTPException(status_code=503, detail=detail) from exc
    if isinstance(exc, GenerationError) and exc.kind is ErrorKind.RATE_LIMITED:
        raise HTTPException(status_code=429, detail=detail) from exc
    raise HTTPException(status_code=502, detail=detail) from exc


def _as_int(value: object, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="count must be an integer") from exc


def _as_subtype(value: object) -> ImageSubtype:
    if value is None or value == "":
        return ImageSubtype.CLINICAL
    try:
        return ImageSubtype(str(value).upper())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="imageSubtype must be CLINICAL, RADIOLOGY or EXPLODED") from exc


@router.get("")
async def list_workspaces() -> dict:
    service = get_workspace_service()
    return {"items": service.list_workspaces()}


@router.get("/{kind}")
async def get_workspace(kind: str) -> dict:
    service = get_workspace_service()
    return service.snapshot(resolve_workspace(kind))


@router.post("/{kind}/requests")
async def submit_request(kind: str, payload: dict) -> dict:
    """Run the primary generation for a workspace; images keep arriving in the background."""

    workspace = resolve_workspace(kind)
    language = str(payload.get("language") or "ar")
    request = GenerationRequest(
        workspace=workspace,
        topic=str(payload.get("topic") or "").strip(),
        language=language,
        count=_as_int(payload.get("count"), 5),
        difficulty=str(payload.get("difficulty") or "Medium"),
        image_subtype=_as_subtype(payload.get("imageSubtype")),
    )
    service = get_workspace_service()
    try:
        return await service.submit(request)
    except (GenerationError, InvalidRequestError, WorkspaceBusyError) as exc:
        raise_for_failure(exc, service, language)
