from fastapi import APIRouter, Depends

from quest.api.auth import get_current_user
from quest.api.deps import trinity_service
from quest.repo.trinity import CoachingPreferences, TrinityService, TrinityStatement

router = APIRouter(prefix="/trinity", tags=["trinity"])


@router.post("")
async def create_trinity(
    request: TrinityStatement,
    user_id: str = Depends(get_current_user),
    service: TrinityService = Depends(trinity_service),
) -> dict:
    trinity = await service.create(user_id, request)
    return {"success": True, "trinity": trinity}


@router.get("")
async def get_trinity(
    user_id: str = Depends(get_current_user),
    service: TrinityService = Depends(trinity_service),
) -> dict:
    return await service.get(user_id)


@router.patch("/preferences")
async def update_preferences(
    request: CoachingPreferences,
    user_id: str = Depends(get_current_user),
    service: TrinityService = Depends(trinity_service),
) -> dict:
    preferences = await service.update_preferences(user_id, request)
    return {"success": True, "preferences": preferences}
