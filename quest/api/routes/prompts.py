from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from quest.api.auth import get_current_user
from quest.api.deps import prompt_router
from quest.core.errors import NotFoundError
from quest.prompts.router import PromptRouter

router = APIRouter(tags=["prompts"])


class SelectPromptsRequest(BaseModel):
    context: str = ""
    tags: list[str] = []
    variables: dict[str, Any] = {}
    limit: int = Field(default=3, ge=1, le=10)
    session_id: Optional[str] = None


@router.get("/prompts")
async def list_prompts(
    user_id: str = Depends(get_current_user),
    prompts: PromptRouter = Depends(prompt_router),
) -> dict:
    return {"prompts": await prompts.list_prompts()}


@router.post("/prompts/select")
async def select_prompts(
    request: SelectPromptsRequest,
    user_id: str = Depends(get_current_user),
    prompts: PromptRouter = Depends(prompt_router),
) -> dict:
    selected = await prompts.select_prompts(request.context, request.tags, request.limit)
    if not selected:
        raise NotFoundError("No prompts available; seed the base prompts first")
    blended = prompts.blend(selected, request.variables)
    for prompt in selected:
        await prompts.log_usage(prompt["id"], user_id, request.session_id)
    return {"prompt": blended, "selected": [p["name"] for p in selected]}


@router.post("/admin/prompts/seed")
async def seed_prompts(
    user_id: str = Depends(get_current_user),
    prompts: PromptRouter = Depends(prompt_router),
) -> dict:
    from quest.intelligence.company_insights import is_admin

    if not is_admin(user_id):
        raise PermissionError("Only admins can seed prompts")
    seeded = await prompts.seed_base_prompts()
    return {"success": True, "seeded": len(seeded)}
