from __future__ import annotations

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from backend.application import get_workspace_service
from backend.core.errors import GenerationError, InvalidRequestError, WorkspaceBusyError
from backend.domain import GenerationRequest, WorkspaceKind
from backend.infrastructure import to_data_url
from backend.routes.workspace import raise_for_failure

router = APIRouter(prefix="/workspaces", tags=["upload"])

MAX_IMAGE_BYTES = 10 * 1024 * 1024


@router.post("/simulation/analysis")
async def analyze_upload(file: UploadFile = File(...), language: str = Form("ar")) -> dict:
    """Upload a clinical image and run the dental image analysis on it."""

    try:
        if not file.content_type or not file.content_type.startswith("image/"):
            raise HTTPException(status_code=400, detail="an image file is required")
        payload = await file.read()
    finally:
        await file.close()

    if not payload:
        raise HTTPException(status_code=400, detail="uploaded image is empty")
    if len(payload) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=413, detail="uploaded image is too large")

    request = GenerationRequest(
        workspace=WorkspaceKind.SIMULATION,
        language=language,
        image=to_data_url(payload, file.content_type),
    )
    service = get_workspace_service()
    try:
        return await service.submit(request)
    except (GenerationError, InvalidRequestError, WorkspaceBusyError) as exc:
        raise_for_failure(exc, service, language)
