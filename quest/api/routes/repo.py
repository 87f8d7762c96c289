"""Tiered repo layers and access grants."""
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from quest.api.auth import get_current_user
from quest.api.deps import repo_service
from quest.repo.tiers import RepoService

router = APIRouter(prefix="/repo", tags=["repo"])


class RepoUpdateRequest(BaseModel):
    data: dict[str, Any]
    merge: bool = True


class DeepFieldRequest(BaseModel):
    value: Any


class GrantRequest(BaseModel):
    granted_to_id: str
    access_level: str
    relationship_type: str = "connection"
    reason: Optional[str] = None
    expires_days: Optional[int] = None


# Access routes are registered before /{layer} so "access" is not read as a layer name

@router.post("/access")
async def grant_access(
    request: GrantRequest,
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    grant = await service.grant_access(
        user_id,
        request.granted_to_id,
        request.access_level,
        relationship_type=request.relationship_type,
        reason=request.reason,
        expires_days=request.expires_days,
    )
    return {"success": True, "grant": grant}


@router.get("/access")
async def list_access(
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    return {"grants": await service.list_access(user_id)}


@router.get("/access/{owner_id}")
async def check_access(
    owner_id: str,
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    level = await service.check_access(owner_id, user_id)
    return {"owner_id": owner_id, "access_level": level, "has_access": level != "none"}


@router.delete("/access/{granted_to_id}")
async def revoke_access(
    granted_to_id: str,
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    await service.revoke_access(user_id, granted_to_id)
    return {"success": True}


@router.get("/view/{owner_id}")
async def view_repo(
    owner_id: str,
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    return await service.view_repo(owner_id, user_id)


@router.put("/deep/{field}")
async def update_deep_field(
    field: str,
    request: DeepFieldRequest,
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    data = await service.update_deep_field(user_id, field, request.value)
    return {"success": True, "data": data}


@router.get("/{layer}")
async def get_repo(
    layer: str,
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    return {"layer": layer, "data": await service.get_repo(user_id, layer)}


@router.post("/{layer}")
async def update_repo(
    layer: str,
    request: RepoUpdateRequest,
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    data = await service.update_repo(user_id, layer, request.data, merge=request.merge)
    return {"success": True, "layer": layer, "data": data}
