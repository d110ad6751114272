from __future__ import annotations

from fastapi import APIRouter

from backend.application import get_workspace_service

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("")
async def get_chat_log() -> dict:
    service = get_workspace_service()
    return {"items": service.chat_log()}
