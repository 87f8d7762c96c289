from uuid import UUID

from fastapi import APIRouter, Depends

from quest.api.auth import get_current_user
from quest.api.deps import goal_service
from quest.repo.goals import Goal, GoalService, Task, TaskUpdate

router = APIRouter(tags=["goals"])


@router.get("/goals")
async def list_goals(
    user_id: str = Depends(get_current_user),
    service: GoalService = Depends(goal_service),
) -> dict:
    return {"goals": await service.list_goals(user_id)}


@router.post("/goals")
async def create_goal(
    request: Goal,
    user_id: str = Depends(get_current_user),
    service: GoalService = Depends(goal_service),
) -> dict:
    return {"success": True, "goal": await service.create_goal(user_id, request)}


@router.get("/goals/stats")
async def goal_stats(
    user_id: str = Depends(get_current_user),
    service: GoalService = Depends(goal_service),
) -> dict:
    return await service.stats(user_id)


@router.post("/goals/{goal_id}/tasks")
async def add_task(
    goal_id: UUID,
    request: Task,
    user_id: str = Depends(get_current_user),
    service: GoalService = Depends(goal_service),
) -> dict:
    return {"success": True, "task": await service.add_task(user_id, str(goal_id), request)}


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: UUID,
    request: TaskUpdate,
    user_id: str = Depends(get_current_user),
    service: GoalService = Depends(goal_service),
) -> dict:
    return {"success": True, "task": await service.update_task(user_id, str(task_id), request)}
