from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from quest.api.auth import get_current_user
from quest.api.deps import okr_service
from quest.repo.okr import OKR, OKRService, suggest_key_results

router = APIRouter(prefix="/okrs", tags=["okrs"])


class KeyResultUpdate(BaseModel):
    current_value: float
    notes: Optional[str] = None


@router.get("")
async def list_okrs(
    user_id: str = Depends(get_current_user),
    service: OKRService = Depends(okr_service),
) -> dict:
    return {"okrs": await service.list_okrs(user_id)}


@router.post("")
async def create_okr(
    request: OKR,
    user_id: str = Depends(get_current_user),
    service: OKRService = Depends(okr_service),
) -> dict:
    return {"success": True, "okr": await service.create(user_id, request)}


@router.get("/suggest")
async def suggest(objective: str = "") -> dict:
    return {"suggestions": suggest_key_results(objective)}


@router.patch("/{okr_id}/key-results/{kr_id}")
async def update_key_result(
    okr_id: UUID,
    kr_id: str,
    request: KeyResultUpdate,
    user_id: str = Depends(get_current_user),
    service: OKRService = Depends(okr_service),
) -> dict:
    okr = await service.update_key_result(user_id, str(okr_id), kr_id, request.current_value, request.notes)
    return {"success": True, "okr": okr}
