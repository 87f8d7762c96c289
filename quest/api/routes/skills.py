from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from quest.api.auth import get_current_user
from quest.api.deps import repo_service
from quest.repo import skills as skill_norm
from quest.repo.tiers import RepoService

router = APIRouter(prefix="/skills", tags=["skills"])


class AddSkillRequest(BaseModel):
    name: str
    category: Optional[str] = None
    proficiency: Optional[str] = None


class NormalizeRequest(BaseModel):
    skills: list[str]


@router.get("")
async def list_skills(
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    return {"skills": await service.list_skills(user_id)}


@router.post("")
async def add_skill(
    request: AddSkillRequest,
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    skill = await service.add_skill(user_id, request.name, request.category, request.proficiency)
    return {"success": True, "skill": skill}


@router.get("/autocomplete")
async def autocomplete(q: str = "", limit: int = 10) -> dict:
    return {"suggestions": skill_norm.autocomplete(q, limit)}


@router.post("/normalize")
async def normalize(request: NormalizeRequest) -> dict:
    return {"skills": skill_norm.deduplicate(request.skills)}


@router.delete("/{name}")
async def remove_skill(
    name: str,
    user_id: str = Depends(get_current_user),
    service: RepoService = Depends(repo_service),
) -> dict:
    await service.remove_skill(user_id, name)
    return {"success": True}
